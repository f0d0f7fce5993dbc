"""
File Entry Models

Metadata records describing stored artifacts and their links to domain entities.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VariantType(str, Enum):
    """Built-in variant classifications (custom sizes use their own name)"""
    ORIGINAL = "original"
    THUMBNAIL = "thumbnail"
    COMPRESSED = "compressed"


class EntityRelation(BaseModel):
    """Relationship between a file entry and another entity in the system"""

    entity_id: str = Field(..., description="Identifier of the related entity")
    entity_name: str = Field(..., description="Display name or logical folder of the entity")
    is_used: bool = Field(default=True, description="Whether the entity actively uses the file")
    notes: Optional[str] = Field(None, description="Free-text note, e.g. 'primary avatar'")
    linked_on: datetime = Field(default_factory=utcnow, description="When the link was recorded")

    def matches(self, entity_id: str, entity_name: str) -> bool:
        return (
            self.entity_id.casefold() == entity_id.casefold()
            and self.entity_name.casefold() == entity_name.casefold()
        )


class FileEntry(BaseModel):
    """Stored artifact metadata (primary upload or derived rendition)"""

    id: str = Field(
        default_factory=lambda: uuid4().hex,
        frozen=True,
        description="Unique artifact identifier"
    )
    file_name: str = Field(..., description="Stored file name")
    original_file_name: Optional[str] = Field(None, description="Name as uploaded by the client")
    location: str = Field(..., frozen=True, description="Backend-relative address (path or key)")
    category: str = Field(..., min_length=1, description="Caller-supplied partition")
    size: int = Field(..., ge=0, frozen=True, description="Size in bytes")
    content_type: Optional[str] = Field(None, description="MIME type")
    file_extension: str = Field(default="", description="Lower-cased extension including the dot")
    metadata: Dict[str, str] = Field(default_factory=dict, description="Free-form metadata")
    uploaded_at: datetime = Field(default_factory=utcnow, description="Upload timestamp")
    last_accessed_at: datetime = Field(default_factory=utcnow, description="Last access timestamp")
    variant_type: str = Field(
        default=VariantType.ORIGINAL.value,
        description="original, thumbnail, compressed or a custom size name"
    )
    encrypted: bool = Field(default=False, description="Encrypted at rest")
    storage_provider: Optional[str] = Field(None, description="Owning backend name")
    is_deleted: bool = Field(default=False, description="Soft-delete flag")
    related_entities: List[EntityRelation] = Field(default_factory=list)

    model_config = {
        "json_schema_extra": {
            "example": {
                "id": "4f7c1c1e0d7b4bd1a2b9cbd34e0f9a11",
                "file_name": "avatar.png",
                "original_file_name": "avatar.png",
                "location": "Users/Avatar/Images/4f7c1c1e0d7b4bd1a2b9cbd34e0f9a11-avatar.png",
                "category": "Users",
                "size": 204800,
                "content_type": "image/png",
                "file_extension": ".png",
                "metadata": {
                    "CompressedPath": "Users/Avatar/Images/compressed/4f7c1c1e0d7b4bd1a2b9cbd34e0f9a11-avatar.jpg"
                },
                "variant_type": "original",
                "storage_provider": "local",
            }
        }
    }

    @property
    def is_variant(self) -> bool:
        return self.variant_type != VariantType.ORIGINAL.value
