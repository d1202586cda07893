"""
Argo CD Operator - read path for a Kopf-based Argo CD operator.

This package provides the caching and read-consistency layer the operator
uses for Secrets and ConfigMaps:
- Label-filtered informer cache for tracked objects
- Metadata-only cache for everything else of those kinds
- Hybrid client with live fallback and tracking-label promotion
- Managed cache lifecycle tied to the operator process
"""

__version__ = "0.1.0"
