"""kubemirror: event-driven local mirrors of Kubernetes resources."""

__version__ = "0.1.0"
