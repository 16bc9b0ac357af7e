"""Service layer: one class per group of operations, each built around an injected `ObjectStore`."""

from mediavault.services.catalog_service import CatalogService
from mediavault.services.mutation_service import MutationService
from mediavault.services.upload_service import UploadService
from mediavault.services.validation_service import ValidationService

__all__ = ["CatalogService", "MutationService", "UploadService", "ValidationService"]
