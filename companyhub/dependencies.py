"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging

from companyhub.config import get_settings
from companyhub.db import DbClient, InMemoryDbClient, PostgresDbClient
from companyhub.identity import (
    FirebaseIdentityProvider,
    IdentityProvider,
    InMemoryIdentityProvider,
    initialize_firebase_app,
)
from companyhub.storage import InMemoryStorageClient, S3StorageClient, StorageClient

logger = logging.getLogger(__name__)

_db_client: DbClient | None = None
_identity_provider: IdentityProvider | None = None
_storage_client: StorageClient | None = None


def _firebase_app():
    settings = get_settings()
    return initialize_firebase_app(
        settings.firebase_service_account, settings.firebase_project_id
    )


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so the connection pool is shared across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    backend = settings.effective_database_backend
    if backend == "sql":
        _db_client = PostgresDbClient(settings.database_url)
    elif backend == "firestore":
        # Imported lazily so the SQL/in-memory setups never touch Firestore.
        from companyhub.firestore_db import FirestoreDbClient

        _db_client = FirestoreDbClient(app=_firebase_app())
    else:
        _db_client = InMemoryDbClient()
    logger.info("Using %s persistence backend", backend)
    return _db_client


def get_identity_provider() -> IdentityProvider:
    global _identity_provider
    if _identity_provider:
        return _identity_provider

    settings = get_settings()
    if settings.use_in_memory_backends:
        _identity_provider = InMemoryIdentityProvider()
    else:
        _identity_provider = FirebaseIdentityProvider(
            _firebase_app(), profile_collection=settings.firebase_profile_collection
        )
    return _identity_provider


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.storage_bucket:
        _storage_client = InMemoryStorageClient()
    else:
        _storage_client = S3StorageClient(
            bucket=settings.storage_bucket,
            region=settings.storage_region or "",
            endpoint=settings.storage_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
            public_base_url=settings.storage_public_base_url,
        )
    return _storage_client
