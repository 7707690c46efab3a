"""Result envelopes returned by :class:`EndpointClient`, one shape per call kind."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, TypeVar

from .models import ErrorDetails, File, Folder, PaginationLinks

T = TypeVar("T")
LinksT = TypeVar("LinksT", bound=PaginationLinks)


@dataclass(slots=True)
class StatusResult:
    """Bare status of a delete, restore, upload or download call."""

    status: int
    content: str | None = None
    error: ErrorDetails | None = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


@dataclass(slots=True)
class ListResult(Generic[LinksT]):
    status: int
    content: str | None = None
    error: ErrorDetails | None = None
    files: list[File] = field(default_factory=list)
    folders: list[Folder] = field(default_factory=list)
    links: LinksT | None = None

    @property
    def ok(self) -> bool:
        return self.status == 200


@dataclass(slots=True)
class SingleResult(Generic[T]):
    status: int
    content: str | None = None
    error: ErrorDetails | None = None
    instance: T | None = None

    @property
    def ok(self) -> bool:
        return self.status == 200


@dataclass(slots=True)
class MutationResult(Generic[T]):
    """Outcome of a create (POST) or update (PATCH) call."""

    status: int
    content: str | None = None
    error: ErrorDetails | None = None
    instance: T | None = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300
