"""
Type registry for the Kubernetes kinds the operator reads.

The Python Kubernetes client exposes one typed method per verb and kind
(``read_namespaced_secret``, ``list_config_map_for_all_namespaces`` and so
on). A ``ResourceKind`` records which API class and method stem serve a
model class, so caches and clients can work on any registered kind.
"""

import logging
from dataclasses import dataclass
from typing import Any

from kubernetes import client

from argocd_operator.errors import KindNotRegisteredError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResourceKind:
    """Everything needed to read, list, watch and write one kind."""

    model: type
    list_model: type
    api_version: str
    kind: str
    api_class: type
    resource: str
    namespaced: bool = True

    @property
    def list_kind(self) -> str:
        return f"{self.kind}List"

    def method_name(self, verb: str, all_namespaces: bool = False) -> str:
        """
        Name of the typed API method implementing ``verb`` for this kind.

        Args:
            verb: One of read, list, create, replace, patch, delete
            all_namespaces: For list, use the cluster-wide variant

        Returns:
            Method name on ``api_class``
        """
        if not self.namespaced:
            return f"{verb}_{self.resource}"
        if verb == "list" and all_namespaces:
            return f"list_{self.resource}_for_all_namespaces"
        return f"{verb}_namespaced_{self.resource}"


class Scheme:
    """Registry mapping model classes to ``ResourceKind`` entries."""

    def __init__(self) -> None:
        self._kinds: dict[type, ResourceKind] = {}

    def add_kind(self, kind: ResourceKind) -> None:
        """
        Register a kind.

        Raises:
            ValueError: If the entry is inconsistent with the API class
        """
        probe = kind.method_name("read")
        if not hasattr(kind.api_class, probe):
            raise ValueError(
                f"{kind.api_class.__name__} has no method {probe} for kind {kind.kind}"
            )
        existing = self._kinds.get(kind.model)
        if existing is not None and existing != kind:
            raise ValueError(f"Kind {kind.kind} is already registered differently")
        self._kinds[kind.model] = kind

    def kind_for(self, model: type | Any) -> ResourceKind:
        """
        Look up the registered kind for a model class or instance.

        Raises:
            KindNotRegisteredError: If the model is not registered
        """
        model_cls = model if isinstance(model, type) else type(model)
        try:
            return self._kinds[model_cls]
        except KeyError:
            raise KindNotRegisteredError(model_cls.__name__) from None

    def is_registered(self, model: type) -> bool:
        return model in self._kinds

    def kinds(self) -> list[ResourceKind]:
        return list(self._kinds.values())

    def __contains__(self, model: object) -> bool:
        return model in self._kinds


SECRET = ResourceKind(
    model=client.V1Secret,
    list_model=client.V1SecretList,
    api_version="v1",
    kind="Secret",
    api_class=client.CoreV1Api,
    resource="secret",
)
CONFIG_MAP = ResourceKind(
    model=client.V1ConfigMap,
    list_model=client.V1ConfigMapList,
    api_version="v1",
    kind="ConfigMap",
    api_class=client.CoreV1Api,
    resource="config_map",
)
SERVICE = ResourceKind(
    model=client.V1Service,
    list_model=client.V1ServiceList,
    api_version="v1",
    kind="Service",
    api_class=client.CoreV1Api,
    resource="service",
)
SERVICE_ACCOUNT = ResourceKind(
    model=client.V1ServiceAccount,
    list_model=client.V1ServiceAccountList,
    api_version="v1",
    kind="ServiceAccount",
    api_class=client.CoreV1Api,
    resource="service_account",
)
DEPLOYMENT = ResourceKind(
    model=client.V1Deployment,
    list_model=client.V1DeploymentList,
    api_version="apps/v1",
    kind="Deployment",
    api_class=client.AppsV1Api,
    resource="deployment",
)
STATEFUL_SET = ResourceKind(
    model=client.V1StatefulSet,
    list_model=client.V1StatefulSetList,
    api_version="apps/v1",
    kind="StatefulSet",
    api_class=client.AppsV1Api,
    resource="stateful_set",
)

CORE_KINDS = (SECRET, CONFIG_MAP, SERVICE, SERVICE_ACCOUNT, DEPLOYMENT, STATEFUL_SET)


def new_scheme(kinds: tuple[ResourceKind, ...] = CORE_KINDS) -> Scheme:
    """Build a scheme with the given kinds registered."""
    scheme = Scheme()
    for kind in kinds:
        scheme.add_kind(kind)
    logger.debug(f"Scheme built with kinds: {', '.join(k.kind for k in kinds)}")
    return scheme
