"""Unit tests for resource descriptor resolution."""

from __future__ import annotations

import pytest

from await_operator.operator.errors import DiscoveryError, ResourceNotFoundError
from await_operator.operator.interfaces import ResourceHandle
from await_operator.operator.resources import ResourceDescriptor, ResourceResolver


def test_complete_descriptor_skips_discovery(directory) -> None:
    resolver = ResourceResolver(directory)

    handle = resolver.resolve(
        ResourceDescriptor(group="", version="v1", kind="ConfigMap", name="configmaps")
    )

    assert handle == ResourceHandle(group="", version="v1", resource="configmaps", kind="ConfigMap")
    assert directory.calls == []


def test_resolves_by_plural_name(directory) -> None:
    handle = ResourceResolver(directory).resolve(ResourceDescriptor(version="v1", name="pods"))

    assert handle.kind == "Pod"
    assert handle.resource == "pods"
    assert directory.calls == [("", "v1")]


def test_resolves_by_kind_with_directory_group_version(directory) -> None:
    handle = ResourceResolver(directory).resolve(
        ResourceDescriptor(group="argoproj.io", kind="Workflow")
    )

    assert handle.group == "argoproj.io"
    assert handle.version == "v1alpha1"
    assert handle.resource == "workflows"
    assert handle.group_version == "argoproj.io/v1alpha1"


def test_kind_lookup_falls_back_to_case_insensitive(directory) -> None:
    handle = ResourceResolver(directory).resolve(ResourceDescriptor(version="v1", kind="configmap"))
    assert handle.kind == "ConfigMap"


def test_name_is_preferred_over_kind(directory) -> None:
    handle = ResourceResolver(directory).resolve(
        ResourceDescriptor(version="v1", kind="Pod", name="configmaps")
    )
    assert handle.resource == "configmaps"


def test_cluster_scoped_resources_keep_scope(directory) -> None:
    handle = ResourceResolver(directory).resolve(ResourceDescriptor(version="v1", kind="Namespace"))
    assert handle.namespaced is False


def test_unknown_resource_raises_not_found(directory) -> None:
    with pytest.raises(ResourceNotFoundError):
        ResourceResolver(directory).resolve(ResourceDescriptor(version="v1", kind="Secret"))


def test_empty_descriptor_raises_not_found(directory) -> None:
    with pytest.raises(ResourceNotFoundError):
        ResourceResolver(directory).resolve(ResourceDescriptor(version="v1"))
    assert directory.calls == []


def test_discovery_errors_propagate(directory) -> None:
    directory.error = DiscoveryError("connection refused")
    with pytest.raises(DiscoveryError):
        ResourceResolver(directory).resolve(ResourceDescriptor(version="v1", kind="Pod"))
