"""Domain errors."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class StorageRequestError(RuntimeError):
    """Raised when a Storage API call returns a status the workflow did not expect."""

    status_code: int
    method: str
    url: str
    code: str | None = None
    message: str | None = None

    def __str__(self) -> str:
        return f"{self.status_code}: {self.code} - {self.message}"
