from __future__ import annotations


class RegionFormatError(ValueError):
    """Base class for malformed segmentation files."""


class MissingFieldError(RegionFormatError):
    def __init__(self, field: str, message: str | None = None) -> None:
        self.field = field
        super().__init__(message or f"Struct is missing expected element: {field}")


class InvalidStructureError(RegionFormatError):
    pass


class InvalidShapeError(RegionFormatError):
    pass


class UnsupportedTypeError(RegionFormatError):
    def __init__(self, field: str, kind: object, message: str | None = None) -> None:
        self.field = field
        self.kind = kind
        super().__init__(message or f"{field} has unknown type: {kind}")


class InconsistentRleError(RegionFormatError):
    pass


class ContainerError(RuntimeError):
    """The container could not be opened or was used incorrectly."""
