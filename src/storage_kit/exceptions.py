"""Storage exceptions

Error taxonomy shared by the registry, the resolver, the variant pipeline and
every storage backend.
"""


class StorageError(Exception):
    """Generic storage failure (I/O errors, backend SDK errors)."""


class StorageValidationError(StorageError):
    """Invalid caller input: missing category, missing file, unusable entity id."""


class StorageConfigurationError(StorageError):
    """Unresolvable executor or invalid backend configuration."""


class StorageSecurityError(StorageError):
    """A resolved address escapes the configured storage root."""


class StorageNotFoundError(StorageError):
    """The requested address does not exist on the backend."""
