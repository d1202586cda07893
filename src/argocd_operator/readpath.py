"""
Read path wiring.

Builds the caches and the client reconcilers read through, according to the
effective cache strategy:

- ``hybrid``: metadata-only primary cache, label-filtered full-object cache
  and a ``HybridClient`` over both
- ``strip``: primary cache with payload stripped from untracked objects and
  a ``ClientWrapper`` that refreshes stripped reads live
- ``full``: primary cache holding full objects and a plain cached client
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from kubernetes import client

from argocd_operator.clientwrapper import ClientWrapper
from argocd_operator.constants import (
    CACHE_STRATEGY_FULL,
    CACHE_STRATEGY_HYBRID,
    CACHE_STRATEGY_STRIP,
)
from argocd_operator.errors import ConfigurationError
from argocd_operator.hybridcache import (
    RESTRICTED_KINDS,
    CacheRunnable,
    HybridClient,
    new_filtered_cache,
    new_primary_cache,
)
from argocd_operator.kube.cache import InformerCache
from argocd_operator.kube.client import CachedClient, LiveClient
from argocd_operator.kube.manager import Manager
from argocd_operator.kube.scheme import Scheme, new_scheme
from argocd_operator.settings import Settings

logger = logging.getLogger(__name__)


@dataclass
class ReadPath:
    """Everything a reconciler needs to read cluster state."""

    strategy: str
    client: Any
    live: LiveClient
    caches: list[InformerCache] = field(default_factory=list)

    def register(self, manager: Manager, sync_timeout_seconds: float | None) -> None:
        """Hand every cache to the manager as a runnable."""
        for cache in self.caches:
            manager.add(CacheRunnable(cache, sync_timeout_seconds))


def build_read_path(
    api_client: client.ApiClient,
    operator_settings: Settings,
    scheme: Scheme | None = None,
    restricted_kinds: tuple[type, ...] = RESTRICTED_KINDS,
) -> ReadPath:
    """
    Build caches and the read client for the configured strategy.

    Nothing is started here.

    Args:
        api_client: Kubernetes API client shared by every cache
        operator_settings: Loaded operator settings
        scheme: Registry to use; the core registry when omitted
        restricted_kinds: Kinds stored metadata-only in the primary cache,
            held in full by the filtered cache and read through the hybrid
            path; one tuple configures all three

    Raises:
        ConfigurationError: If the strategy is invalid
        CacheConstructionError: If the filtered cache cannot be built
    """
    scheme = scheme if scheme is not None else new_scheme()
    strategy = operator_settings.effective_cache_strategy
    cache_options = {
        "namespaces": operator_settings.watched_namespaces,
        "resync_period_seconds": operator_settings.cache_resync_period_seconds,
        "watch_timeout_seconds": operator_settings.cache_watch_timeout_seconds,
        "sync_timeout_seconds": operator_settings.cache_sync_timeout_seconds,
    }

    live = LiveClient(api_client, scheme)
    primary_cache = new_primary_cache(
        api_client, scheme, strategy, restricted_kinds=restricted_kinds, **cache_options
    )
    primary = CachedClient(primary_cache, writer=live)

    if strategy == CACHE_STRATEGY_HYBRID:
        filtered_cache, label_client = new_filtered_cache(
            api_client=api_client,
            scheme=scheme,
            restricted_kinds=restricted_kinds,
            **cache_options,
        )
        read_client = HybridClient(
            primary, label_client, live, restricted_kinds=restricted_kinds
        )
        caches = [primary_cache, filtered_cache]
    elif strategy == CACHE_STRATEGY_STRIP:
        read_client = ClientWrapper(primary, live)
        caches = [primary_cache]
    elif strategy == CACHE_STRATEGY_FULL:
        read_client = primary
        caches = [primary_cache]
    else:
        raise ConfigurationError(f"Unknown cache strategy '{strategy}'")

    logger.info(
        f"Read path configured with {strategy} strategy "
        f"({len(caches)} cache(s), client {type(read_client).__name__})"
    )
    return ReadPath(strategy=strategy, client=read_client, live=live, caches=caches)
