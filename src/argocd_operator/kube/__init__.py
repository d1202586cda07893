"""
Kubernetes plumbing for the Argo CD operator read path.

Contains:
- scheme: model class <-> API mapping for the kinds the operator reads
- selectors: label selector parsing and matching
- informer: list+watch backed object store for one kind
- cache: informer cache over many kinds and namespaces
- client: live and cache-backed clients
- manager: process supervisor for long-running components
"""
