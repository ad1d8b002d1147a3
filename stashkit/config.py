import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def _env_list(name: str) -> list[str]:
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider: str = Field(default=os.getenv("STASH_PROVIDER", "local"))
    log_level: str = Field(default=os.getenv("STASH_LOG_LEVEL", "INFO"))

    # Shared validation policy
    max_file_size_bytes: int = Field(
        default=int(os.getenv("STASH_MAX_FILE_SIZE_BYTES", str(10 * 1024 * 1024)))
    )  # 10MB
    allowed_extensions: list[str] = Field(
        default_factory=lambda: _env_list("STASH_ALLOWED_EXTENSIONS")
    )
    allowed_content_types: list[str] = Field(
        default_factory=lambda: _env_list("STASH_ALLOWED_CONTENT_TYPES")
    )
    compute_hash: bool = Field(default=_env_bool("STASH_COMPUTE_HASH", "false"))
    overwrite_existing: bool = Field(default=_env_bool("STASH_OVERWRITE_EXISTING", "false"))
    signed_url_expiry_seconds: int = Field(
        default=int(os.getenv("STASH_SIGNED_URL_EXPIRY_SECONDS", "3600"))
    )

    # Local filesystem
    local_base_path: str = Field(default=os.getenv("STASH_LOCAL_BASE_PATH", "uploads"))
    local_base_url: str = Field(default=os.getenv("STASH_LOCAL_BASE_URL", "/api/v1/files/serve"))
    local_public_read: bool = Field(default=_env_bool("STASH_LOCAL_PUBLIC_READ", "false"))
    signed_urls_enabled: bool = Field(default=_env_bool("STASH_SIGNED_URLS_ENABLED", "false"))
    signing_key: Optional[str] = Field(default=os.getenv("STASH_SIGNING_KEY"))

    # S3-compatible object storage
    s3_endpoint_url: Optional[str] = Field(default=os.getenv("S3_ENDPOINT_URL"))
    s3_access_key: Optional[str] = Field(default=os.getenv("S3_ACCESS_KEY"))
    s3_secret_key: Optional[str] = Field(default=os.getenv("S3_SECRET_KEY"))
    s3_bucket_name: str = Field(default=os.getenv("S3_BUCKET_NAME", "stashkit"))
    s3_region: str = Field(default=os.getenv("S3_REGION", "us-east-1"))
    s3_key_prefix: Optional[str] = Field(default=os.getenv("S3_KEY_PREFIX"))
    s3_public_read: bool = Field(default=_env_bool("S3_PUBLIC_READ", "false"))
    s3_storage_class: str = Field(default=os.getenv("S3_STORAGE_CLASS", "STANDARD"))
    s3_enable_encryption: bool = Field(default=_env_bool("S3_ENABLE_ENCRYPTION", "true"))

    # Azure Blob storage
    azure_connection_string: Optional[str] = Field(
        default=os.getenv("AZURE_STORAGE_CONNECTION_STRING")
    )
    azure_container_name: str = Field(
        default=os.getenv("AZURE_STORAGE_CONTAINER", "stashkit")
    )
    azure_blob_prefix: Optional[str] = Field(default=os.getenv("AZURE_BLOB_PREFIX"))
    azure_public_access: bool = Field(default=_env_bool("AZURE_PUBLIC_ACCESS", "false"))
    azure_access_tier: str = Field(default=os.getenv("AZURE_ACCESS_TIER", "Hot"))

    def validate_s3_config(self) -> None:
        """Validate S3 configuration when actually needed."""
        if self.s3_access_key is None or self.s3_secret_key is None:
            raise ValueError("S3_ACCESS_KEY and S3_SECRET_KEY must be configured")

    def validate_azure_config(self) -> None:
        if not self.azure_connection_string:
            raise ValueError("AZURE_STORAGE_CONNECTION_STRING must be configured")


settings = Settings()
