"""Kubernetes operator for ModelRegistry custom resources."""

__version__ = "0.1.0"
