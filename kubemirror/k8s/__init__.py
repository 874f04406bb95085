"""Kubernetes API access for kubemirror.

Submodules:
    client -- credential loading and one-shot queries (ClusterClient).
    source -- list+watch sources consumed by resource mirrors.
"""

from kubemirror.k8s.client import ClusterClient, K8sClientError, load_client_config
from kubemirror.k8s.source import KubernetesSource, ResourceSource

__all__ = [
    "ClusterClient",
    "K8sClientError",
    "KubernetesSource",
    "ResourceSource",
    "load_client_config",
]
