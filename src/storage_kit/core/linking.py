"""
Entity Linking

Helpers for relating file entries to domain entities.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional, Protocol, runtime_checkable

from storage_kit.exceptions import StorageValidationError
from storage_kit.models.file_entry import EntityRelation, FileEntry, utcnow


@runtime_checkable
class FileAttachable(Protocol):
    """Domain entities that can hold file attachments.

    Implementations typically append to an in-memory collection; persisting
    the entity is the caller's responsibility.
    """

    def add_file_attachment(self, file_entry: FileEntry) -> None:
        ...


@dataclass(frozen=True)
class EntityReference:
    """An entity known only by its type name and id, e.g. from a form field."""

    entity_name: str
    id: str


def _snake_case(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def entity_type_name(entity: Any) -> str:
    if isinstance(entity, EntityReference):
        return entity.entity_name
    return type(entity).__name__


def resolve_entity_identifier(entity: Any) -> str:
    """Resolve the identifier of an entity.

    Looks for ``id``, ``Id``, ``{TypeName}Id`` and ``{type_name}_id``, as
    attributes or, for mappings, as keys.

    Raises:
        StorageValidationError: If no identifier field exists or it is blank
    """
    if entity is None:
        raise StorageValidationError("Entity instance must be provided to link file entries.")

    type_name = entity_type_name(entity)
    candidates = ("id", "Id", f"{type_name}Id", f"{_snake_case(type_name)}_id")

    missing = object()
    raw = missing
    for field in candidates:
        if isinstance(entity, Mapping):
            raw = entity.get(field, missing)
        else:
            raw = getattr(entity, field, missing)
        if raw is not missing:
            break

    if raw is missing:
        raise StorageValidationError(
            f"Entity '{type_name}' must expose an id or {type_name}Id field to relate files."
        )
    if raw is None:
        raise StorageValidationError(f"Entity '{type_name}' id cannot be None when relating files.")

    value = str(raw)
    if not value.strip():
        raise StorageValidationError(f"Entity '{type_name}' id cannot be empty when relating files.")
    return value


def link_to_entity(
    file_entry: FileEntry,
    entity: Any,
    name: Optional[str] = None,
    mark_used: bool = True,
    notes: Optional[str] = None,
) -> EntityRelation:
    """Link a file entry to an entity.

    Re-linking the same (identifier, display name) pair is a no-op; the
    existing relation is returned.

    Args:
        file_entry: Target file entry
        entity: Entity to relate to
        name: Display name, defaults to the entity's type name
        mark_used: Whether the entity actively uses the file
        notes: Optional free-text note

    Returns:
        The new or already existing relation
    """
    if file_entry is None:
        raise StorageValidationError("File entry cannot be None when linking entities.")

    entity_id = resolve_entity_identifier(entity)
    display_name = name if name and name.strip() else entity_type_name(entity)

    for relation in file_entry.related_entities:
        if relation.matches(entity_id, display_name):
            return relation

    relation = EntityRelation(
        entity_id=entity_id,
        entity_name=display_name,
        is_used=mark_used,
        notes=notes,
        linked_on=utcnow(),
    )
    file_entry.related_entities.append(relation)
    return relation


def copy_relations_from(target: FileEntry, source: Optional[FileEntry]) -> None:
    """Copy related entity records from source onto target, skipping duplicates."""
    if target is None or source is None:
        return

    for relation in source.related_entities:
        if any(r.matches(relation.entity_id, relation.entity_name) for r in target.related_entities):
            continue
        target.related_entities.append(relation.model_copy())
