"""
ObjectStore — the shared, label-queryable store every component talks to.

The store is the only shared mutable resource: events and runs live
there so that any number of controller replicas see the same state.
Each backend implements the same small capability set, with a separate
status write path and optimistic concurrency on resource_version.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional, TypeVar

from legator.core.resources import Resource

if TYPE_CHECKING:
    from legator.core import StoreConfig

R = TypeVar("R", bound=Resource)


class StoreError(Exception):
    """Store unavailable or a transient I/O failure."""


class NotFoundError(StoreError):
    """The named object does not exist."""

    def __init__(self, kind: str, namespace: str, name: str) -> None:
        super().__init__(f"{kind} {namespace}/{name} not found")
        self.kind = kind
        self.namespace = namespace
        self.name = name


class AlreadyExistsError(StoreError):
    """An object with the same name already exists."""


class ConflictError(StoreError):
    """The write was based on a stale resource_version."""


class ObjectStore(ABC):
    """Base class for object store backends."""

    @abstractmethod
    async def create(self, obj: R) -> R:
        """Persist a new object and return it as stored.

        Status on the submitted object is ignored.
        """
        ...

    @abstractmethod
    async def get(self, kind: type[R], namespace: str, name: str) -> R:
        ...

    @abstractmethod
    async def list(
        self,
        kind: type[R],
        namespace: Optional[str] = None,
        labels: Optional[dict[str, str]] = None,
    ) -> list[R]:
        """List objects of a kind, optionally filtered by namespace and labels."""
        ...

    @abstractmethod
    async def update(self, obj: R) -> R:
        """Write metadata and spec. Status changes are ignored."""
        ...

    @abstractmethod
    async def update_status(self, obj: R) -> R:
        """Write only the status sub-object."""
        ...

    @abstractmethod
    async def delete(self, obj: Resource) -> None:
        ...

    async def close(self) -> None:
        """Release backend resources. No-op by default."""


def open_store(config: StoreConfig) -> ObjectStore:
    """Build the backend named by the store config."""
    if config.backend == "memory":
        from legator.store.memory import InMemoryObjectStore

        return InMemoryObjectStore()
    if config.backend == "http":
        from legator.store.http import HTTPObjectStore

        return HTTPObjectStore(
            config.url,
            token=config.token,
            verify=config.verify_tls,
            timeout=config.timeout,
        )
    raise ValueError(f"Unknown store backend '{config.backend}'")


__all__ = [
    "AlreadyExistsError",
    "ConflictError",
    "NotFoundError",
    "ObjectStore",
    "StoreError",
    "open_store",
]
