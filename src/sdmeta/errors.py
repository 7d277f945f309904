"""
Codec error types.

All errors inherit from MetadataError for easy catching.
Only MalformedContainerError escapes the public API; the others are
converted to structured outcomes before they reach a caller.
"""


class MetadataError(Exception):
    """Base exception for all codec failures."""
    pass


class MalformedContainerError(MetadataError):
    """Raised when a buffer is not a PNG/JPEG/WebP container or its structure is broken."""

    def __init__(self, reason: str, offset: int | None = None):
        self.reason = reason
        self.offset = offset
        where = f" at offset {offset}" if offset is not None else ""
        super().__init__(f"Malformed container{where}: {reason}")


class ContainerEncodeError(MetadataError):
    """Raised when a segment cannot be serialized into its container."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Cannot encode container: {reason}")


class DecodeError(MetadataError):
    """Raised by a vendor decoder that claimed a payload it cannot parse."""

    def __init__(self, software: str, reason: str):
        self.software = software
        self.reason = reason
        super().__init__(f"{software}: {reason}")
