"""
Errors raised by the signing pipeline.
All of them abort the current operation; nothing is retried.
"""


class SigningError(Exception):
    """Base class for signing pipeline failures."""


class InvalidInputError(SigningError):
    """Malformed caller input (data URL, area record, scale)."""


class ImageDecodeError(SigningError):
    """Signature image is corrupt or in an unsupported format."""


class PageIndexError(SigningError):
    """A signature area points at a page the document does not have."""


class PdfDecodeError(SigningError):
    """Source PDF cannot be read."""
