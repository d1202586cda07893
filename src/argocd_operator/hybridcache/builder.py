"""
Cache construction for the hybrid read path.

``new_primary_cache`` builds the unfiltered cache whose shape depends on the
cache strategy. ``new_filtered_cache`` builds the label-filtered cache for
restricted kinds and its read-only client; it either returns both or raises
``CacheConstructionError``.
"""

import logging
from typing import Any

from kubernetes import client
from kubernetes.config import ConfigException

from argocd_operator.cacheutils import strip_untracked_data, to_partial_object_metadata
from argocd_operator.constants import (
    CACHE_STRATEGY_FULL,
    CACHE_STRATEGY_HYBRID,
    CACHE_STRATEGY_STRIP,
    DEFAULT_CACHE_SYNC_TIMEOUT,
    DEFAULT_RESYNC_PERIOD,
    DEFAULT_WATCH_TIMEOUT,
    FILTERED_CACHE_NAME,
    PRIMARY_CACHE_NAME,
)
from argocd_operator.errors import CacheConstructionError, ConfigurationError, OperatorError
from argocd_operator.hybridcache.client import RESTRICTED_KINDS
from argocd_operator.hybridcache.labels import TrackingLabel
from argocd_operator.kube.cache import ByKind, InformerCache
from argocd_operator.kube.client import CachedClient
from argocd_operator.kube.scheme import Scheme, new_scheme
from argocd_operator.utils.kubernetes import get_kubernetes_client

logger = logging.getLogger(__name__)


def new_primary_cache(
    api_client: client.ApiClient,
    scheme: Scheme,
    strategy: str = CACHE_STRATEGY_HYBRID,
    restricted_kinds: tuple[type, ...] = RESTRICTED_KINDS,
    namespaces: list[str] | None = None,
    resync_period_seconds: float = DEFAULT_RESYNC_PERIOD,
    watch_timeout_seconds: int = DEFAULT_WATCH_TIMEOUT,
    sync_timeout_seconds: float = DEFAULT_CACHE_SYNC_TIMEOUT,
) -> InformerCache:
    """
    Build the primary cache.

    Args:
        api_client: Kubernetes API client
        scheme: Registry of cacheable kinds
        strategy: hybrid stores restricted kinds as metadata only, strip
            drops payload of untracked objects, full stores everything
        restricted_kinds: Kinds the strategy applies to
        namespaces: Namespaces to watch, None for cluster scope

    Raises:
        ConfigurationError: If the strategy is unknown
    """
    transforms: dict[str, Any] = {
        CACHE_STRATEGY_HYBRID: to_partial_object_metadata,
        CACHE_STRATEGY_STRIP: strip_untracked_data,
        CACHE_STRATEGY_FULL: None,
    }
    if strategy not in transforms:
        raise ConfigurationError(f"Unknown cache strategy '{strategy}'")

    transform = transforms[strategy]
    by_kind = {}
    if transform is not None:
        by_kind = {model: ByKind(transform=transform) for model in restricted_kinds}

    logger.info(
        f"Building {PRIMARY_CACHE_NAME} cache with {strategy} strategy",
        extra={"cache_name": PRIMARY_CACHE_NAME},
    )
    return InformerCache(
        api_client,
        scheme,
        name=PRIMARY_CACHE_NAME,
        namespaces=namespaces,
        by_kind=by_kind,
        resync_period_seconds=resync_period_seconds,
        watch_timeout_seconds=watch_timeout_seconds,
        sync_timeout_seconds=sync_timeout_seconds,
    )


def new_filtered_cache(
    api_client: client.ApiClient | None = None,
    configuration: client.Configuration | None = None,
    scheme: Scheme | None = None,
    restricted_kinds: tuple[type, ...] = RESTRICTED_KINDS,
    tracking_label: TrackingLabel = TrackingLabel(),
    namespaces: list[str] | None = None,
    resync_period_seconds: float = DEFAULT_RESYNC_PERIOD,
    watch_timeout_seconds: int = DEFAULT_WATCH_TIMEOUT,
    sync_timeout_seconds: float = DEFAULT_CACHE_SYNC_TIMEOUT,
) -> tuple[InformerCache, CachedClient]:
    """
    Build the label-filtered cache and a read-only client bound to it.

    The cache serves only ``restricted_kinds`` and only objects carrying the
    tracking label. Nothing is started; the caller registers the cache with
    the manager.

    Args:
        api_client: Kubernetes API client; built from ``configuration`` or
            the environment when omitted
        configuration: Connection configuration used when ``api_client`` is
            omitted
        scheme: Registry to use; a fresh core registry when omitted
        restricted_kinds: Kinds held by the cache
        tracking_label: Label every cached object must carry
        namespaces: Namespaces to watch, None for cluster scope

    Returns:
        Tuple of (cache, client)

    Raises:
        CacheConstructionError: If any construction step fails
    """
    try:
        scheme = scheme if scheme is not None else new_scheme()
        for model in restricted_kinds:
            scheme.kind_for(model)
    except (OperatorError, ValueError) as e:
        raise CacheConstructionError(
            f"Unable to build the type registry for the {FILTERED_CACHE_NAME} cache: {e}",
            cause=e,
        ) from e

    try:
        if api_client is None:
            api_client = get_kubernetes_client(configuration)
        cache = InformerCache(
            api_client,
            scheme,
            name=FILTERED_CACHE_NAME,
            namespaces=namespaces,
            by_kind={
                model: ByKind(label_selector=tracking_label.selector)
                for model in restricted_kinds
            },
            restrict_to_by_kind=True,
            resync_period_seconds=resync_period_seconds,
            watch_timeout_seconds=watch_timeout_seconds,
            sync_timeout_seconds=sync_timeout_seconds,
        )
    except (ConfigException, OperatorError, ValueError) as e:
        raise CacheConstructionError(
            f"Unable to establish the {FILTERED_CACHE_NAME} cache: {e}", cause=e
        ) from e

    try:
        label_client = CachedClient(cache)
    except OperatorError as e:
        raise CacheConstructionError(
            f"Unable to bind a client to the {FILTERED_CACHE_NAME} cache: {e}", cause=e
        ) from e

    logger.info(
        f"Built {FILTERED_CACHE_NAME} cache for {len(restricted_kinds)} kind(s) "
        f"with selector {tracking_label.selector}",
        extra={"cache_name": FILTERED_CACHE_NAME},
    )
    return cache, label_client
