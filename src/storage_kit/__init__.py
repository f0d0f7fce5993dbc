"""Backend-agnostic file storage with image renditions."""

__version__ = "0.1.0"
