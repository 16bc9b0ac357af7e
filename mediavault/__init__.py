"""MediaVault: presigned multipart uploads and per-user media management on S3."""

__version__ = "1.0.0"
