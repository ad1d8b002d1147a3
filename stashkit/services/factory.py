"""Select and build the configured storage provider."""

from __future__ import annotations

import logging
from datetime import timedelta
from functools import lru_cache

from stashkit.config import Settings, settings
from stashkit.services.storage import FileStorage

logger = logging.getLogger(__name__)

PROVIDERS = ("local", "s3", "azure_blob")


def _shared_options(config: Settings) -> dict:
    return {
        "max_file_size_bytes": config.max_file_size_bytes or None,
        "allowed_extensions": tuple(config.allowed_extensions),
        "allowed_content_types": tuple(config.allowed_content_types),
        "compute_hash": config.compute_hash,
        "overwrite_existing": config.overwrite_existing,
        "signed_url_expiry": timedelta(seconds=config.signed_url_expiry_seconds),
    }


def build_file_storage(config: Settings, *, bootstrap: bool = True) -> FileStorage:
    """Construct the provider named by ``config.provider``.

    With ``bootstrap`` the S3 bucket or blob container is created when missing.
    """
    provider = config.provider.strip().lower()
    if provider == "local":
        from stashkit.services.local_storage import LocalFileStorage
        from stashkit.services.options import LocalStorageOptions

        return LocalFileStorage(
            LocalStorageOptions(
                base_path=config.local_base_path,
                base_url=config.local_base_url,
                public_read=config.local_public_read,
                enable_signed_urls=config.signed_urls_enabled,
                signing_key=config.signing_key,
                **_shared_options(config),
            )
        )
    if provider == "s3":
        from stashkit.services.object_storage import S3FileStorage
        from stashkit.services.options import S3StorageOptions

        config.validate_s3_config()
        storage = S3FileStorage(
            S3StorageOptions(
                bucket_name=config.s3_bucket_name,
                region=config.s3_region,
                endpoint_url=config.s3_endpoint_url,
                access_key_id=config.s3_access_key,
                secret_access_key=config.s3_secret_key,
                key_prefix=config.s3_key_prefix,
                public_read=config.s3_public_read,
                storage_class=config.s3_storage_class,
                enable_encryption=config.s3_enable_encryption,
                **_shared_options(config),
            )
        )
        if bootstrap:
            storage.ensure_bucket()
        return storage
    if provider == "azure_blob":
        from stashkit.services.blob_storage import BlobFileStorage
        from stashkit.services.options import BlobStorageOptions

        config.validate_azure_config()
        options = BlobStorageOptions(
            connection_string=config.azure_connection_string,
            container_name=config.azure_container_name,
            blob_prefix=config.azure_blob_prefix,
            public_access=config.azure_public_access,
            access_tier=config.azure_access_tier,
            **_shared_options(config),
        )
        storage = BlobFileStorage(options)
        if bootstrap and options.create_container_if_not_exists:
            storage.ensure_container()
        return storage
    raise ValueError(f"Unknown storage provider: {config.provider!r} (expected one of {', '.join(PROVIDERS)})")


@lru_cache(maxsize=1)
def get_file_storage() -> FileStorage:
    storage = build_file_storage(settings)
    logger.info("storage_provider_ready provider=%s", storage.provider_name)
    return storage
