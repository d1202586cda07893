"""
Kubernetes utilities for the Argo CD operator.

This module provides helper functions for interacting with the Kubernetes API:
- Kubernetes client management and configuration
- Not-found classification and construction of API-style not-found errors
- JSON merge patch computation between object snapshots
"""

import json
import logging
from typing import Any

from kubernetes import client, config
from kubernetes.client.rest import ApiException

logger = logging.getLogger(__name__)

_sanitizer = client.ApiClient()


def get_kubernetes_client(
    configuration: client.Configuration | None = None,
) -> client.ApiClient:
    """
    Get configured Kubernetes API client.

    Uses the given configuration if provided, otherwise loads in-cluster
    configuration and falls back to the local kubeconfig.

    Raises:
        config.ConfigException: If no configuration can be loaded
    """
    if configuration is not None:
        return client.ApiClient(configuration)

    try:
        config.load_incluster_config()
        logger.debug("Loaded in-cluster Kubernetes configuration")
    except config.ConfigException:
        try:
            config.load_kube_config()
            logger.debug("Loaded kubeconfig from local environment")
        except config.ConfigException as e:
            logger.error(f"Failed to load Kubernetes configuration: {e}")
            raise

    return client.ApiClient()


def is_not_found(error: BaseException) -> bool:
    """Return True if ``error`` is an API server 404."""
    return isinstance(error, ApiException) and error.status == 404


def new_not_found(kind: str, resource: str, name: str) -> ApiException:
    """
    Build a 404 ApiException shaped like the API server's response.

    Args:
        kind: Kind of the missing object (e.g. Secret)
        resource: Plural resource name (e.g. secrets)
        name: Name of the missing object
    """
    error = ApiException(status=404, reason="Not Found")
    error.body = json.dumps(
        {
            "kind": "Status",
            "apiVersion": "v1",
            "status": "Failure",
            "message": f'{resource} "{name}" not found',
            "reason": "NotFound",
            "details": {"name": name, "kind": resource},
            "code": 404,
        }
    )
    return error


def to_dict(obj: Any) -> Any:
    """Serialize a typed model to its wire (camelCase) dict form."""
    return _sanitizer.sanitize_for_serialization(obj)


def create_merge_patch(original: Any, modified: Any) -> dict[str, Any]:
    """
    Compute a JSON merge patch (RFC 7386) turning ``original`` into ``modified``.

    Both arguments may be typed models or plain dicts. Removed keys are
    emitted as ``None``; unchanged keys are omitted.
    """
    return _diff(to_dict(original) or {}, to_dict(modified) or {})


def _diff(original: dict[str, Any], modified: dict[str, Any]) -> dict[str, Any]:
    patch: dict[str, Any] = {}
    for key in original.keys() - modified.keys():
        patch[key] = None
    for key, value in modified.items():
        if key not in original:
            patch[key] = value
        elif isinstance(value, dict) and isinstance(original[key], dict):
            nested = _diff(original[key], value)
            if nested:
                patch[key] = nested
        elif value != original[key]:
            patch[key] = value
    return patch
