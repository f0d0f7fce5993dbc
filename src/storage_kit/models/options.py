"""
Backend Options

Per-backend configuration payloads carried by storage descriptors.
"""

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class ImageSizeOption(BaseModel):
    """Custom rendition size, stored under a folder named after the size"""

    name: str = Field(..., description="Rendition name, also the folder name")
    max_width: int = Field(..., gt=0, description="Maximum width in pixels")
    max_height: int = Field(..., gt=0, description="Maximum height in pixels")
    quality: int = Field(default=80, description="JPEG quality, clamped into 1..100")

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        value = value.strip()
        if "/" in value or "\\" in value or value in (".", ".."):
            raise ValueError(f"Invalid rendition name: {value!r}")
        return value


class ImageProcessingOptions(BaseModel):
    """Controls which renditions are derived from uploaded images"""

    enabled: bool = Field(default=True, description="Master switch for rendition generation")
    create_thumbnail: bool = Field(default=True)
    thumbnail_max_width: int = Field(default=200, gt=0)
    thumbnail_max_height: int = Field(default=200, gt=0)
    create_compressed: bool = Field(default=True)
    compressed_max_width: int = Field(default=1200, gt=0)
    compressed_max_height: int = Field(default=1200, gt=0)
    quality: int = Field(default=85, description="JPEG quality, clamped into 1..100")
    additional_sizes: List[ImageSizeOption] = Field(default_factory=list)


class LocalOptions(BaseModel):
    """Options for the local filesystem backend"""

    path: str = Field(default="Files", description="Base directory (relative to the working directory)")
    ensure_base_path_exists: bool = Field(default=True)
    public_base_url: str = Field(default="/files", description="URL prefix the base directory is served under")
    image_processing: ImageProcessingOptions = Field(default_factory=ImageProcessingOptions)


class S3Options(BaseModel):
    """Options for S3-compatible object storage (AWS S3, MinIO, LocalStack)"""

    bucket_name: str = Field(..., min_length=1)
    region: str = Field(default="us-east-1")
    endpoint_url: Optional[str] = Field(None, description="Custom endpoint for MinIO/LocalStack")
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    prefix: Optional[str] = Field(None, description="Key prefix prepended to every location")
    ensure_bucket_exists: bool = Field(default=False)
    use_server_side_encryption: bool = Field(default=False)
    kms_key_id: Optional[str] = None
    storage_class: Optional[str] = None
    canned_acl: Optional[str] = None
    presigned_url_expiration_seconds: int = Field(default=900, gt=0)
    image_processing: ImageProcessingOptions = Field(default_factory=ImageProcessingOptions)

    @model_validator(mode="after")
    def validate_credentials(self) -> "S3Options":
        if bool(self.access_key_id) != bool(self.secret_access_key):
            raise ValueError(
                "Both access_key_id and secret_access_key must be provided together (or neither)"
            )
        return self


class SftpOptions(BaseModel):
    """Options for the SFTP remote-transfer backend"""

    host: str = Field(..., min_length=1)
    port: int = Field(default=22, ge=1, le=65535)
    username: Optional[str] = None
    password: Optional[str] = None
    client_keys: List[str] = Field(default_factory=list, description="Private key file paths")
    known_hosts: Optional[str] = Field(
        None,
        description="known_hosts file; None disables host key checking"
    )
    remote_path: str = Field(default="Files", description="Remote base directory")
    ensure_remote_path_exists: bool = Field(default=True)
    image_processing: ImageProcessingOptions = Field(default_factory=ImageProcessingOptions)


class FakeOptions(BaseModel):
    """Options for the in-memory fake backend used in tests and local development"""

    max_file_size_bytes: Optional[int] = Field(None, ge=0, description="Reject larger uploads")
    operation_delay_ms: int = Field(default=0, ge=0, description="Simulated latency per operation")
    image_processing: ImageProcessingOptions = Field(default_factory=ImageProcessingOptions)
