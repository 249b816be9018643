"""Keeps nginx upstream groups in sync with Kubernetes Endpoints."""

__version__ = "0.1.0"
