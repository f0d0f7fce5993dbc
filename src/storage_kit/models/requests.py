"""
API Request and Response Models

Pydantic models for API input/output validation.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .descriptor import StorageDescriptor
from .file_entry import FileEntry


class UploadResponse(BaseModel):
    """Response after successful file upload"""

    file: FileEntry = Field(..., description="Primary stored artifact")
    variants: List[FileEntry] = Field(default_factory=list, description="Derived image renditions")
    provider_id: str = Field(..., description="Provider the file was stored with")
    message: str = Field(default="File uploaded successfully")


class DeleteResponse(BaseModel):
    """Result of a delete request"""

    location: str
    deleted: bool


class ArchiveResponse(BaseModel):
    """Result of an archive or unarchive request"""

    location: str
    archive_location: str = Field(..., description="Address of the archived copy")
    moved: bool = Field(..., description="False when there was nothing to move")


class UrlResponse(BaseModel):
    """Direct-access URL for a stored file"""

    location: str
    url: str
    expires_in: Optional[int] = Field(None, description="Lifetime in seconds, when the URL is signed")


class ProviderResponse(BaseModel):
    """Registered storage provider (options are never exposed)"""

    id: str
    name: str
    provider_type: str
    is_default: bool
    options_type: Optional[str] = Field(None, description="Class name of the options payload")

    @classmethod
    def from_descriptor(cls, descriptor: StorageDescriptor) -> "ProviderResponse":
        """Create response from a storage descriptor"""
        options_type = type(descriptor.options).__name__ if descriptor.options is not None else None
        return cls(
            id=descriptor.id,
            name=descriptor.name,
            provider_type=descriptor.provider_type,
            is_default=descriptor.is_default,
            options_type=options_type
        )


class ProviderListResponse(BaseModel):
    """All registered providers"""

    providers: List[ProviderResponse] = Field(default_factory=list)
    total: int = Field(..., ge=0)


class UpdateOptionsRequest(BaseModel):
    """New options payload for a provider, validated against its options model"""

    options: Dict[str, Any] = Field(..., description="Options fields for the provider's backend type")
