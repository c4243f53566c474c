"""Kubernetes admission review handling as a WSGI app, with logging, tracing and metrics interfaces."""

__version__ = "2.0.0"
__all__ = ["handler", "log", "metrics", "model", "tracing"]