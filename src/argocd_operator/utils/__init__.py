"""
Utils package - helpers shared by the read path.

Contains helper modules for:
- Kubernetes client configuration
- API error classification and synthesized not-found errors
- Merge patch computation
"""

from argocd_operator.utils.kubernetes import (
    create_merge_patch,
    get_kubernetes_client,
    is_not_found,
    new_not_found,
)

__all__ = [
    "create_merge_patch",
    "get_kubernetes_client",
    "is_not_found",
    "new_not_found",
]
