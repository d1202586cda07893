"""Unit tests for the kind registry."""

import pytest
from kubernetes import client

from argocd_operator.errors import KindNotRegisteredError
from argocd_operator.kube.scheme import (
    CONFIG_MAP,
    DEPLOYMENT,
    SECRET,
    ResourceKind,
    Scheme,
    new_scheme,
)


class TestResourceKind:
    def test_namespaced_method_names(self):
        assert SECRET.method_name("read") == "read_namespaced_secret"
        assert CONFIG_MAP.method_name("list") == "list_namespaced_config_map"
        assert (
            CONFIG_MAP.method_name("list", all_namespaces=True)
            == "list_config_map_for_all_namespaces"
        )
        assert DEPLOYMENT.method_name("patch") == "patch_namespaced_deployment"

    def test_cluster_scoped_method_names(self):
        namespace_kind = ResourceKind(
            model=client.V1Namespace,
            list_model=client.V1NamespaceList,
            api_version="v1",
            kind="Namespace",
            api_class=client.CoreV1Api,
            resource="namespace",
            namespaced=False,
        )

        assert namespace_kind.method_name("read") == "read_namespace"
        assert namespace_kind.method_name("list", all_namespaces=True) == "list_namespace"

    def test_list_kind(self):
        assert SECRET.list_kind == "SecretList"


class TestScheme:
    def test_core_kinds_registered(self):
        scheme = new_scheme()

        for model in (
            client.V1Secret,
            client.V1ConfigMap,
            client.V1Service,
            client.V1ServiceAccount,
            client.V1Deployment,
            client.V1StatefulSet,
        ):
            assert model in scheme

    def test_kind_for_model_and_instance(self):
        scheme = new_scheme()

        assert scheme.kind_for(client.V1Secret) is SECRET
        assert scheme.kind_for(client.V1Secret()) is SECRET

    def test_unregistered_kind(self):
        with pytest.raises(KindNotRegisteredError) as exc_info:
            new_scheme().kind_for(client.V1Pod)

        assert exc_info.value.kind == "V1Pod"

    def test_add_kind_validates_api_method(self):
        broken = ResourceKind(
            model=client.V1Pod,
            list_model=client.V1PodList,
            api_version="v1",
            kind="Pod",
            api_class=client.AppsV1Api,
            resource="pod",
        )

        with pytest.raises(ValueError):
            Scheme().add_kind(broken)

    def test_re_registering_same_kind_is_allowed(self):
        scheme = new_scheme()

        scheme.add_kind(SECRET)

        assert scheme.is_registered(client.V1Secret)
        assert len(scheme.kinds()) == 6
