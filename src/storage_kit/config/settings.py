"""
Storage Kit Settings

Configuration management using Pydantic settings with environment variable support.
"""

from typing import List, Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Storage Kit configuration"""

    # Service Configuration
    service_name: str = Field(default="storage-kit", description="Service name")
    environment: str = Field(default="development", description="Environment (development, production)")
    port: int = Field(default=8004, description="Service port")
    host: str = Field(default="0.0.0.0", description="Service host")
    log_level: str = Field(default="INFO", description="Root logging level")

    # Bootstrap storage provider
    # STORAGE_PROVIDER: "local" (default), "s3", "sftp" or "fake"
    # - local: Development/self-hosted with docker volumes
    # - s3: AWS S3 or MinIO
    # - sftp: Remote file server
    # - fake: In-memory, for tests and demos
    storage_provider: str = Field(default="local", description="Backend type of the default provider")
    storage_provider_name: str = Field(default="default", description="Display name of the default provider")
    storage_local_path: str = Field(default="./data/uploads", description="Local storage base directory")
    storage_public_base_url: str = Field(default="/files", description="URL prefix local files are served under")

    # S3 Configuration
    s3_bucket_name: Optional[str] = Field(
        default=None,
        description="S3 bucket name (required when STORAGE_PROVIDER=s3)"
    )
    s3_endpoint_url: Optional[str] = Field(
        default=None,
        description="S3/MinIO endpoint URL (optional, for MinIO/LocalStack)"
    )
    s3_region: str = Field(default="us-east-1", description="AWS region")
    s3_access_key_id: Optional[str] = Field(default=None, description="Falls back to the boto3 credential chain")
    s3_secret_access_key: Optional[str] = Field(default=None)
    s3_prefix: Optional[str] = Field(default=None, description="Key prefix for every object")
    s3_ensure_bucket_exists: bool = Field(default=False)
    s3_use_server_side_encryption: bool = Field(default=False)
    s3_kms_key_id: Optional[str] = Field(default=None)
    s3_storage_class: Optional[str] = Field(default=None)
    s3_canned_acl: Optional[str] = Field(default=None)
    s3_presigned_url_expiration_seconds: int = Field(default=900)

    # SFTP Configuration
    sftp_host: Optional[str] = Field(default=None, description="SFTP host (required when STORAGE_PROVIDER=sftp)")
    sftp_port: int = Field(default=22)
    sftp_username: Optional[str] = Field(default=None)
    sftp_password: Optional[str] = Field(default=None)
    sftp_client_keys: List[str] = Field(default_factory=list, description="Private key file paths")
    sftp_known_hosts: Optional[str] = Field(default=None, description="known_hosts file (unset disables host key checks)")
    sftp_remote_path: str = Field(default="Files")

    # Image renditions
    image_processing_enabled: bool = Field(default=True)
    image_create_thumbnail: bool = Field(default=True)
    image_thumbnail_max_width: int = Field(default=200)
    image_thumbnail_max_height: int = Field(default=200)
    image_create_compressed: bool = Field(default=True)
    image_compressed_max_width: int = Field(default=1200)
    image_compressed_max_height: int = Field(default=1200)
    image_quality: int = Field(default=85)

    # Upload limits
    max_file_size_mb: int = Field(default=50, description="Maximum file size in MB")
    allowed_file_types: str = Field(
        default=".log,.txt,.png,.jpg,.jpeg,.gif,.bmp,.webp,.tif,.tiff,.pdf,.json,.doc,.docx,.csv,.xml",
        description="Allowed file extensions (comma-separated, empty allows all)"
    )

    # CORS Configuration
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8090"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def max_file_size_bytes(self) -> int:
        """Convert max file size from MB to bytes"""
        return self.max_file_size_mb * 1024 * 1024

    @property
    def allowed_extensions(self) -> List[str]:
        """Parse allowed file types into a lower-cased list"""
        return [ext.strip().lower() for ext in self.allowed_file_types.split(",") if ext.strip()]


# Global settings instance
settings = Settings()
