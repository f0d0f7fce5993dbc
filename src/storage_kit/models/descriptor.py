"""
Storage Descriptor

Identity and configuration payload of one configured storage backend.
"""

from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class ProviderType:
    """Well-known backend type tags (custom tags are plain strings)"""
    LOCAL = "local"
    S3 = "s3"
    SFTP = "sftp"
    FAKE = "fake"


class StorageDescriptor(BaseModel):
    """One configured backend.

    Identity fields are frozen. The options payload is opaque to the registry
    and is replaced only through StorageProviderRegistry.try_update_options.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str = Field(default_factory=lambda: uuid4().hex, frozen=True, description="Unique identity")
    name: str = Field(..., frozen=True, description="Display name")
    provider_type: str = Field(..., frozen=True, description="Backend type tag, e.g. local/s3/sftp/fake")
    is_default: bool = Field(default=False)
    options: Optional[Any] = Field(None, description="Backend-specific options model")
    executor_binding: Optional[str] = Field(
        None,
        description="Name of an executor registration to use for this descriptor"
    )

    def __str__(self) -> str:
        return f"{self.name} ({self.id})"
