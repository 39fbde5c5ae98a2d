"""Error taxonomy shared by the store, the gateway and the orchestrator.

Classification is structural: status code and transport cause, never the
text of an error message.
"""

from __future__ import annotations

from dataclasses import dataclass

from homebase.ports.remote_port import ErrorCause, RemoteError


class HomebaseError(Exception):
    """Base class for every error this package raises on purpose."""


@dataclass
class FieldError:
    field: str
    message: str


class ValidationError(HomebaseError):
    """Malformed input, caught before any I/O."""

    def __init__(self, errors: list[FieldError]) -> None:
        self.errors = errors
        detail = "; ".join(f"{e.field}: {e.message}" for e in errors)
        super().__init__(f"Validation failed: {detail}")


class NotFoundError(HomebaseError):
    """The targeted record does not exist."""

    def __init__(self, collection: str, record_id: str) -> None:
        self.collection = collection
        self.record_id = record_id
        target = f"{collection} record {record_id}" if record_id else f"{collection} record"
        super().__init__(f"{target} not found")


class RemoteUnavailableError(HomebaseError):
    """The remote API could not be reached or reported itself down."""

    def __init__(self, cause: RemoteError) -> None:
        self.cause = cause
        super().__init__(f"Remote API unavailable: {cause}")


class RemoteRejectedError(HomebaseError):
    """The remote API answered but refused the request."""

    def __init__(self, cause: RemoteError) -> None:
        self.cause = cause
        super().__init__(f"Remote API rejected request: {cause}")


class StorageError(HomebaseError):
    """The local store could not be read or written."""


class PersistenceError(HomebaseError):
    """Both the remote API and the local store failed."""


def classify_remote_error(
    exc: RemoteError, collection: str = "", record_id: str = "",
) -> HomebaseError:
    """Map a gateway failure onto the taxonomy.

    - transport failures and 5xx -> RemoteUnavailableError
    - 404 -> NotFoundError
    - other 4xx and application-level rejections -> RemoteRejectedError
    """
    if exc.cause is ErrorCause.TRANSPORT:
        return RemoteUnavailableError(exc)
    if exc.status_code == 404:
        return NotFoundError(collection, record_id)
    if exc.status_code >= 500:
        return RemoteUnavailableError(exc)
    return RemoteRejectedError(exc)
