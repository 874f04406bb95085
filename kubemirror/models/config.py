"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class KubernetesConfig:
    """Cluster credentials.

    An empty ``kubeconfig`` selects in-cluster service account credentials.
    A relative path is resolved against the process working directory.
    """

    kubeconfig: str = ""


@dataclass
class MirrorConfig:
    """Settings for one resource mirror."""

    resync_seconds: int = 60
    initial_list_retries: int = 3
    watch_timeout_seconds: int = 300


@dataclass
class PodMirrorConfig(MirrorConfig):
    """Pod mirror configuration. An empty namespace watches all namespaces."""

    namespace: str = "default"


@dataclass
class NodeMirrorConfig(MirrorConfig):
    """Node mirror configuration."""

    resync_seconds: int = 10


@dataclass
class LabelWatchConfig:
    """Label watcher observer configuration."""

    label_key: str = "marwin"
    signal_removal: bool = True
    webhook_url: str = ""


@dataclass
class APIConfig:
    """REST API configuration."""

    port: int = 8080


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"
    format: str = "json"


@dataclass
class KubeMirrorConfig:
    """Top-level kubemirror configuration."""

    kubernetes: KubernetesConfig = field(default_factory=KubernetesConfig)
    pods: PodMirrorConfig = field(default_factory=PodMirrorConfig)
    nodes: NodeMirrorConfig = field(default_factory=NodeMirrorConfig)
    label_watch: LabelWatchConfig = field(default_factory=LabelWatchConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
