"""
HTTP object store — talks to a Kubernetes-style REST API server.

Objects are addressed as

    /apis/legator.io/v1alpha1/namespaces/{namespace}/{plural}/{name}[/status]

with label-selector listing, bearer-token auth and the status
subresource as a separate write path.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from legator.core.resources import API_VERSION, Resource
from legator.store import (
    AlreadyExistsError,
    ConflictError,
    NotFoundError,
    ObjectStore,
    R,
    StoreError,
)

logger = logging.getLogger(__name__)


def label_selector(labels: dict[str, str]) -> str:
    return ",".join(f"{k}={v}" for k, v in sorted(labels.items()))


class HTTPObjectStore(ObjectStore):
    """ObjectStore backed by a remote API server."""

    def __init__(
        self,
        base_url: str,
        *,
        token: str = "",
        verify: bool = True,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("HTTP store requires a base URL")
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            verify=verify,
            timeout=timeout,
            transport=transport,
        )

    # ------------------------------------------------------------------
    # ObjectStore
    # ------------------------------------------------------------------

    async def create(self, obj: R) -> R:
        body = obj.to_wire()
        body.pop("status", None)
        resp = await self._request(
            "POST", self._path(type(obj), obj.namespace), obj, json=body, creating=True
        )
        return type(obj).model_validate(resp.json())

    async def get(self, kind: type[R], namespace: str, name: str) -> R:
        resp = await self._request("GET", self._path(kind, namespace, name), (kind, namespace, name))
        return kind.model_validate(resp.json())

    async def list(
        self,
        kind: type[R],
        namespace: Optional[str] = None,
        labels: Optional[dict[str, str]] = None,
    ) -> list[R]:
        params = {}
        if labels:
            params["labelSelector"] = label_selector(labels)
        resp = await self._request(
            "GET", self._path(kind, namespace), (kind, namespace or "", ""), params=params
        )
        objs = []
        for item in resp.json().get("items") or []:
            try:
                objs.append(kind.model_validate(item))
            except ValidationError:
                # one bad object must not hide the rest of the list
                meta = (item.get("metadata") or {}) if isinstance(item, dict) else {}
                logger.warning(
                    "Skipping malformed %s %s/%s",
                    kind.KIND,
                    meta.get("namespace", ""),
                    meta.get("name", "?"),
                    exc_info=True,
                )
        return objs

    async def update(self, obj: R) -> R:
        resp = await self._request(
            "PUT", self._path(type(obj), obj.namespace, obj.name), obj, json=obj.to_wire()
        )
        return type(obj).model_validate(resp.json())

    async def update_status(self, obj: R) -> R:
        resp = await self._request(
            "PUT",
            self._path(type(obj), obj.namespace, obj.name) + "/status",
            obj,
            json=obj.to_wire(),
        )
        return type(obj).model_validate(resp.json())

    async def delete(self, obj: Resource) -> None:
        await self._request("DELETE", self._path(type(obj), obj.namespace, obj.name), obj)

    async def close(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _path(self, kind: type[Resource], namespace: Optional[str], name: str = "") -> str:
        path = f"/apis/{API_VERSION}"
        if namespace:
            path += f"/namespaces/{namespace}"
        path += f"/{kind.PLURAL}"
        if name:
            path += f"/{name}"
        return path

    async def _request(
        self,
        method: str,
        path: str,
        target: Any,
        *,
        creating: bool = False,
        **kwargs: Any,
    ) -> httpx.Response:
        try:
            resp = await self._http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise StoreError(f"{method} {path}: {e}") from e

        if resp.status_code == 404:
            kind, namespace, name = self._describe(target)
            raise NotFoundError(kind, namespace, name)
        if resp.status_code == 409:
            if creating:
                raise AlreadyExistsError(f"{method} {path}: {resp.text}")
            raise ConflictError(f"{method} {path}: {resp.text}")
        if resp.is_error:
            raise StoreError(f"{method} {path} returned {resp.status_code}: {resp.text}")
        return resp

    @staticmethod
    def _describe(target: Any) -> tuple[str, str, str]:
        if isinstance(target, Resource):
            return target.KIND, target.namespace, target.name
        kind, namespace, name = target
        return kind.KIND, namespace, name
