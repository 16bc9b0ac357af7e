# tests/conftest.py
"""
Global test bootstrap
- Sets storage/auth env BEFORE importing the app so `settings` picks it up
- Pins anyio to asyncio
- Pulls in store and app fixtures
"""

from __future__ import annotations

import os

import pytest

# ──────────────────────────────────────────────────────────────────────────────
# 🌱 Test env (set before `mediavault.core.config` is imported)
# ──────────────────────────────────────────────────────────────────────────────
os.environ.setdefault("S3_BUCKET_NAME", "test-bucket")
os.environ.setdefault("AWS_REGION", "us-east-1")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("S3_KEY_PREFIX", "uploads")
os.environ.setdefault("LOG_LEVEL", "WARNING")


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


# ──────────────────────────────────────────────────────────────────────────────
# 📦 Fixtures (store, app, client)
# ──────────────────────────────────────────────────────────────────────────────
from tests.fixtures.store import *  # noqa: E402,F401,F403
from tests.fixtures.app import *    # noqa: E402,F401,F403
