"""Remote data port — abstract interface for the REST backend.

Core modules depend on this protocol, never on a specific HTTP client.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Protocol


class ErrorCause(str, Enum):
    """Where a remote call failed."""

    TRANSPORT = "transport"      # host unreachable, DNS, TLS, timeout
    HTTP = "http"                # non-2xx status
    APPLICATION = "application"  # 2xx with {"success": false}


class RemoteError(Exception):
    """Raised when any remote gateway call fails."""

    def __init__(
        self,
        status_code: int,
        message: str,
        cause: ErrorCause = ErrorCause.HTTP,
        errors: list[dict] | None = None,
    ) -> None:
        self.status_code = status_code
        self.message = message
        self.cause = cause
        self.errors = errors or []
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.cause.value} {self.status_code}] {self.message}"


class RemoteGateway(Protocol):
    """Typed CRUD over the remote API. Paths are relative to the base URL."""

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any: ...

    async def post(self, path: str, body: dict[str, Any]) -> Any: ...

    async def put(self, path: str, body: dict[str, Any]) -> Any: ...

    async def delete(self, path: str) -> None: ...
