"""Kubernetes REST client for discovery and watches.

This intentionally wraps `requests` to keep cluster calls out of the observer
and reconciler and make tests easy. It implements both the resource directory
(``list_resource_kinds``) and the event source (``open_stream``).
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable, Iterator
from typing import Any

import requests

from await_operator.operator.errors import DiscoveryError, StreamError, StreamOpenError
from await_operator.operator.interfaces import APIResource, ChangeType, ResourceHandle, WatchEvent

logger = logging.getLogger(__name__)


WatchOpener = Callable[[str | None], requests.Response]


class WatchStream:
    """A watch that outlives the API server's per-request timeout.

    When a response ends normally the watch is reopened from the last
    ``resourceVersion`` seen, so iteration only stops on ``close`` or an error.
    ``close`` may be called from another thread to interrupt a pending read,
    and may be called more than once.
    """

    def __init__(self, response: requests.Response, reopen: WatchOpener | None = None) -> None:
        self._response = response
        self._reopen = reopen
        self._resource_version: str | None = None
        self._lock = threading.Lock()
        self._closed = False

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            response = self._response
        response.close()

    def _lines(self, response: requests.Response) -> Iterator[bytes]:
        try:
            yield from response.iter_lines()
        except Exception as e:
            if self._closed:
                return
            raise StreamError(f"Watch connection failed: {e}") from e

    def _next_response(self) -> requests.Response | None:
        if self._reopen is None:
            return None
        logger.debug(
            "Watch ended; reopening", extra={"resource_version": self._resource_version}
        )
        response = self._reopen(self._resource_version)
        with self._lock:
            if not self._closed:
                self._response = response
                return response
        response.close()
        return None

    def __iter__(self) -> Iterator[WatchEvent]:
        response: requests.Response | None = self._response
        while response is not None:
            for line in self._lines(response):
                if not line:
                    continue
                frame = _parse_frame(line)
                event = _event_from_frame(frame)
                version = _resource_version(frame)
                if version:
                    self._resource_version = version
                if event is not None:
                    yield event
            if self._closed:
                return
            response = self._next_response()


def decode_watch_frame(line: bytes | str) -> WatchEvent | None:
    """Decode one line of a watch response; bookmarks decode to None."""

    return _event_from_frame(_parse_frame(line))


def _parse_frame(line: bytes | str) -> dict[str, Any]:
    try:
        frame = json.loads(line)
    except ValueError as e:
        raise StreamError(f"Malformed watch frame: {e}") from e
    if not isinstance(frame, dict):
        raise StreamError("Malformed watch frame: expected an object")
    return frame


def _resource_version(frame: dict[str, Any]) -> str | None:
    obj = frame.get("object")
    metadata = obj.get("metadata") if isinstance(obj, dict) else None
    version = metadata.get("resourceVersion") if isinstance(metadata, dict) else None
    return version if isinstance(version, str) else None


def _event_from_frame(frame: dict[str, Any]) -> WatchEvent | None:
    frame_type = frame.get("type")
    obj = frame.get("object")
    if frame_type == "BOOKMARK":
        return None
    if frame_type == "ERROR":
        message = obj.get("message") if isinstance(obj, dict) else None
        raise StreamError(f"Watch error: {message or obj}")

    try:
        change_type = ChangeType(frame_type)
    except ValueError:
        raise StreamError(f"Unknown watch event type: {frame_type!r}") from None
    if not isinstance(obj, dict):
        raise StreamError("Malformed watch frame: object is missing")

    kind = obj.get("kind")
    return WatchEvent(
        change_type=change_type,
        object_kind=kind if isinstance(kind, str) else "",
        payload=obj,
    )


class KubeClient:
    """Small wrapper around the Kubernetes REST API for the operations we need."""

    def __init__(
        self,
        *,
        base_url: str,
        token: str,
        verify: bool | str = True,
        watch_timeout_seconds: int | None = None,
        session: requests.Session | None = None,
    ) -> None:
        if not token:
            raise ValueError("Kubernetes token is required")

        self._base_url = base_url.rstrip("/")
        self._watch_timeout_seconds = watch_timeout_seconds
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
                "User-Agent": "await-operator",
            }
        )
        self._session.verify = verify

    def _group_version_url(self, group: str, version: str) -> str:
        if not group:
            return f"{self._base_url}/api/{version}"
        return f"{self._base_url}/apis/{group}/{version}"

    def _get_discovery(self, url: str) -> dict[str, Any] | None:
        """GET a discovery document; None when the API server does not serve it."""

        try:
            resp = self._session.get(url, timeout=30)
        except requests.RequestException as e:
            raise DiscoveryError(f"Discovery request failed for {url}: {e}") from e
        if resp.status_code == 404:
            return None
        try:
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise DiscoveryError(f"Discovery request failed for {url}: {e}") from e
        if not isinstance(data, dict):
            raise DiscoveryError(f"Malformed discovery document from {url}")
        return data

    def preferred_version(self, group: str) -> str | None:
        """Return the preferred version of an API group (``v1`` for the core group)."""

        if not group:
            return "v1"
        data = self._get_discovery(f"{self._base_url}/apis/{group}")
        if data is None:
            return None
        preferred = data.get("preferredVersion")
        version = preferred.get("version") if isinstance(preferred, dict) else None
        if not isinstance(version, str) or not version:
            raise DiscoveryError(f"API group {group!r} has no preferred version")
        return version

    def list_resource_kinds(self, group: str, version: str) -> list[APIResource]:
        """List the resource kinds served under group/version.

        An empty version selects the group's preferred version. Subresources
        (``pods/log``) are skipped.
        """

        resolved_version = version or self.preferred_version(group)
        if resolved_version is None:
            return []

        url = self._group_version_url(group, resolved_version)
        data = self._get_discovery(url)
        if data is None:
            return []

        resources = data.get("resources")
        if not isinstance(resources, list):
            raise DiscoveryError(f"Malformed resource list from {url}")

        out: list[APIResource] = []
        for item in resources:
            name = item.get("name") if isinstance(item, dict) else None
            kind = item.get("kind") if isinstance(item, dict) else None
            if not isinstance(name, str) or not isinstance(kind, str):
                raise DiscoveryError(f"Malformed resource entry from {url}: {item!r}")
            if "/" in name:
                continue
            out.append(
                APIResource(
                    name=name,
                    kind=kind,
                    group=group,
                    version=resolved_version,
                    namespaced=bool(item.get("namespaced", True)),
                )
            )
        logger.debug(
            "Listed resource kinds",
            extra={"group": group, "version": resolved_version, "count": len(out)},
        )
        return out

    def resource_url(self, handle: ResourceHandle, namespace: str) -> str:
        prefix = self._group_version_url(handle.group, handle.version)
        if namespace and handle.namespaced:
            return f"{prefix}/namespaces/{namespace}/{handle.resource}"
        return f"{prefix}/{handle.resource}"

    def _request_watch(self, url: str, resource_version: str | None) -> requests.Response:
        params: dict[str, str] = {"watch": "true", "allowWatchBookmarks": "true"}
        if self._watch_timeout_seconds is not None:
            params["timeoutSeconds"] = str(self._watch_timeout_seconds)
        if resource_version is not None:
            params["resourceVersion"] = resource_version

        try:
            resp = self._session.get(url, params=params, stream=True, timeout=(10, None))
        except requests.RequestException as e:
            raise StreamOpenError(f"Unable to open watch on {url}: {e}") from e
        if resp.status_code == 410:
            resp.close()
            raise StreamError(
                f"Watch on {url} expired: resource version {resource_version} is too old"
            )
        try:
            resp.raise_for_status()
        except requests.HTTPError as e:
            resp.close()
            raise StreamOpenError(f"Unable to open watch on {url}: {e}") from e
        return resp

    def open_stream(self, handle: ResourceHandle, namespace: str) -> WatchStream:
        """Open a watch on ``handle``; an empty namespace watches cluster-wide.

        The returned stream reopens the watch whenever the API server ends it.
        """

        url = self.resource_url(handle, namespace)
        resp = self._request_watch(url, None)
        logger.debug("Watch opened", extra={"url": url})
        return WatchStream(resp, reopen=lambda version: self._request_watch(url, version))

    def close(self) -> None:
        self._session.close()
