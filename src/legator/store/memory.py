"""
In-memory object store.

Behaves like the real store for everything the bus and detector rely
on: generated names, creation timestamps, a status-only write path and
resource_version conflicts. Used for tests and single-process setups.
"""

from __future__ import annotations

import asyncio
import secrets
import string
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from legator.core.resources import Resource
from legator.store import (
    AlreadyExistsError,
    ConflictError,
    NotFoundError,
    ObjectStore,
    R,
)

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits

_Key = tuple[str, str, str]  # kind, namespace, name


def generate_suffix(length: int = 5) -> str:
    return "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(length))


def _labels_match(obj: Resource, selector: Optional[dict[str, str]]) -> bool:
    if not selector:
        return True
    labels = obj.metadata.labels
    return all(labels.get(k) == v for k, v in selector.items())


class InMemoryObjectStore(ObjectStore):
    """Dict-backed store with the same write semantics as the HTTP backend."""

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._objects: dict[_Key, Resource] = {}
        self._lock = asyncio.Lock()
        self._version = 0
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    # Fixtures
    # ------------------------------------------------------------------

    def seed(self, *objs: Resource) -> None:
        """Insert objects verbatim, including status and creation time.

        Unlike create(), nothing is stamped: a missing creation_timestamp
        stays missing.
        """
        for obj in objs:
            stored = obj.model_copy(deep=True)
            stored.metadata.resource_version = self._next_version()
            if not stored.metadata.uid:
                stored.metadata.uid = str(uuid.uuid4())
            self._objects[self._key(stored)] = stored

    def __len__(self) -> int:
        return len(self._objects)

    # ------------------------------------------------------------------
    # ObjectStore
    # ------------------------------------------------------------------

    async def create(self, obj: R) -> R:
        async with self._lock:
            stored = obj.model_copy(deep=True)
            meta = stored.metadata
            if not meta.name:
                if not meta.generate_name:
                    raise ValueError("name or generate_name is required")
                meta.name = self._generate_name(stored)
            key = self._key(stored)
            if key in self._objects:
                raise AlreadyExistsError(f"{stored.KIND} {meta.namespace}/{meta.name} already exists")

            meta.uid = str(uuid.uuid4())
            meta.creation_timestamp = self._clock()
            meta.resource_version = self._next_version()
            stored.status = type(stored.status)()  # type: ignore[attr-defined]
            self._objects[key] = stored
            return stored.model_copy(deep=True)

    async def get(self, kind: type[R], namespace: str, name: str) -> R:
        obj = self._objects.get((kind.KIND, namespace, name))
        if obj is None:
            raise NotFoundError(kind.KIND, namespace, name)
        return obj.model_copy(deep=True)  # type: ignore[return-value]

    async def list(
        self,
        kind: type[R],
        namespace: Optional[str] = None,
        labels: Optional[dict[str, str]] = None,
    ) -> list[R]:
        out = []
        for (obj_kind, obj_ns, _), obj in self._objects.items():
            if obj_kind != kind.KIND:
                continue
            if namespace and obj_ns != namespace:
                continue
            if not _labels_match(obj, labels):
                continue
            out.append(obj.model_copy(deep=True))
        return out  # type: ignore[return-value]

    async def update(self, obj: R) -> R:
        async with self._lock:
            current = self._current(obj)
            stored = obj.model_copy(deep=True)
            stored.status = current.status.model_copy(deep=True)  # type: ignore[attr-defined]
            return self._commit(current, stored)

    async def update_status(self, obj: R) -> R:
        async with self._lock:
            current = self._current(obj)
            stored = current.model_copy(deep=True)
            stored.status = obj.status.model_copy(deep=True)  # type: ignore[attr-defined]
            return self._commit(current, stored)

    async def delete(self, obj: Resource) -> None:
        async with self._lock:
            key = self._key(obj)
            if key not in self._objects:
                raise NotFoundError(obj.KIND, obj.namespace, obj.name)
            del self._objects[key]

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _key(self, obj: Resource) -> _Key:
        return (obj.KIND, obj.metadata.namespace, obj.metadata.name)

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def _generate_name(self, obj: Resource) -> str:
        while True:
            name = obj.metadata.generate_name + generate_suffix()
            if (obj.KIND, obj.metadata.namespace, name) not in self._objects:
                return name

    def _current(self, obj: Resource) -> Resource:
        current = self._objects.get(self._key(obj))
        if current is None:
            raise NotFoundError(obj.KIND, obj.namespace, obj.name)
        sent = obj.metadata.resource_version
        if sent and sent != current.metadata.resource_version:
            raise ConflictError(
                f"{obj.KIND} {obj.namespace}/{obj.name}: resource version {sent} is stale"
            )
        return current

    def _commit(self, current: Resource, stored: R) -> R:
        # identity fields are owned by the store
        stored.metadata.uid = current.metadata.uid
        stored.metadata.creation_timestamp = current.metadata.creation_timestamp
        stored.metadata.resource_version = self._next_version()
        self._objects[self._key(stored)] = stored
        return stored.model_copy(deep=True)
