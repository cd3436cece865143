"""Error and warning types raised by the converter."""


class StructuralError(ValueError):
    """Raised when device-lock key material cannot be derived."""


class TruncationWarning(UserWarning):
    """Emitted when a pack decodes with its identifier, title or blobs missing."""


__all__ = ["StructuralError", "TruncationWarning"]
