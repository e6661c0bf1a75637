"""
Exception hierarchy shared by the codec, the file registry and the ledger
gateway.

Validation and decode errors are meant to be shown to the end user as a
rejected action; none of them is retried automatically.
"""

from __future__ import annotations

from typing import List, Sequence


class HederaHealthError(Exception):
    """Base class for every error raised by :mod:`hederahealth`."""


class ConfigurationError(HederaHealthError):
    """A required setting (such as the QR secret) is missing or malformed."""


class ValidationError(HederaHealthError):
    """An uploaded file was rejected before any record was created."""

    def __init__(self, filename: str, reason: str):
        super().__init__(f"{filename}: {reason}")
        self.filename = filename
        self.reason = reason


class BatchUploadError(ValidationError):
    """
    One or more files of a batch failed validation.

    The files that passed were persisted anyway and are listed in
    :attr:`uploaded`; the failures are in :attr:`errors`.
    """

    def __init__(self, errors: Sequence[ValidationError], uploaded: Sequence = ()):
        first = errors[0]
        super().__init__(first.filename, "; ".join(str(e) for e in errors))
        self.errors: List[ValidationError] = list(errors)
        self.uploaded = list(uploaded)


class UploadCancelled(HederaHealthError):
    """The caller cancelled an upload while it was in progress."""

    def __init__(self, filename: str):
        super().__init__(f"{filename}: upload cancelled")
        self.filename = filename


class EncodingError(HederaHealthError):
    """The QR image could not be rendered."""


class DecodeError(HederaHealthError):
    """A scanned payload could not be decrypted or parsed."""

    def __init__(self, reason: str = "corrupt"):
        super().__init__(reason)
        self.reason = reason


class ServiceUnavailable(HederaHealthError):
    """A required external collaborator (e.g. the ledger client) is absent."""
