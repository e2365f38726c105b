"""Exceptions raised by the attendance core and surfaced to chat handlers."""

from __future__ import annotations


class PunchError(RuntimeError):
    """Base class for every error the chat layer turns into a user-visible reply."""


class ParseError(PunchError):
    """Raised when a user-supplied time or date token matches no accepted form."""

    def __init__(self, token: str) -> None:
        super().__init__(f"cannot interpret '{token}' as a time")
        self.token = token


class NoCredentialError(PunchError):
    """Raised when neither the user nor the shared admin record holds a usable token."""


class NotFoundError(PunchError):
    """Raised when no User record exists for the identity."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"cannot find the user '{user_id}'")
        self.user_id = user_id


class RemoteRequestError(PunchError):
    """Raised when the HR service (or its token endpoint) answers with a non-200 status."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"failed to request:\n\tstatus code: {status_code}\n\tresponse: {body}")
        self.status_code = status_code
        self.body = body


class BatchEntryError(PunchError):
    """Raised when a bulk-update entry is malformed.

    ``applied`` counts the entries written before the failing one; those writes
    are not rolled back.
    """

    def __init__(self, ordinal: str, applied: int) -> None:
        super().__init__(f"an error occurred while processing the {ordinal} record")
        self.ordinal = ordinal
        self.applied = applied


__all__ = [
    "PunchError",
    "ParseError",
    "NoCredentialError",
    "NotFoundError",
    "RemoteRequestError",
    "BatchEntryError",
]
