"""Resolve symbolic resource descriptors into watchable handles."""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from await_operator.operator.errors import ResourceNotFoundError
from await_operator.operator.interfaces import APIResource, ResourceDirectory, ResourceHandle

logger = logging.getLogger(__name__)


class ResourceDescriptor(BaseModel):
    """A possibly incomplete description of a resource type.

    ``name`` is the plural resource name (``configmaps``); ``group`` is empty for
    the core API group.
    """

    group: str = Field(default="")
    version: str = Field(default="")
    kind: str = Field(default="")
    name: str = Field(default="")
    namespaced: bool = Field(default=True)

    @property
    def is_complete(self) -> bool:
        return bool(self.version and self.name and self.kind)


class ResourceResolver:
    """Turn descriptors into handles, consulting the resource directory when needed."""

    def __init__(self, directory: ResourceDirectory) -> None:
        self._directory = directory

    def resolve(self, descriptor: ResourceDescriptor) -> ResourceHandle:
        """Resolve a descriptor.

        The directory is authoritative: when it is consulted, group and version
        come from the matching entry, not from the (possibly incomplete) input.

        Raises:
            ResourceNotFoundError: If no entry matches under the group/version.
            DiscoveryError: If the directory cannot be reached.
        """

        if descriptor.is_complete:
            return ResourceHandle(
                group=descriptor.group,
                version=descriptor.version,
                resource=descriptor.name,
                kind=descriptor.kind,
                namespaced=descriptor.namespaced,
            )

        if not descriptor.name and not descriptor.kind:
            raise ResourceNotFoundError("Resource descriptor names neither a resource nor a kind")

        entries = self._directory.list_resource_kinds(descriptor.group, descriptor.version)
        match = _find_entry(entries, descriptor)
        if match is None:
            raise ResourceNotFoundError(
                f"No resource matching name={descriptor.name!r} kind={descriptor.kind!r} "
                f"in group/version {descriptor.group!r}/{descriptor.version!r}"
            )

        handle = ResourceHandle(
            group=match.group,
            version=match.version,
            resource=match.name,
            kind=match.kind,
            namespaced=match.namespaced,
        )
        logger.debug("Resolved resource descriptor", extra={"resource": str(handle)})
        return handle


def _find_entry(entries: list[APIResource], descriptor: ResourceDescriptor) -> APIResource | None:
    if descriptor.name:
        for entry in entries:
            if entry.name == descriptor.name:
                return entry

    if descriptor.kind:
        for entry in entries:
            if entry.kind == descriptor.kind:
                return entry
        wanted = descriptor.kind.lower()
        for entry in entries:
            if entry.kind.lower() == wanted:
                return entry

    return None
