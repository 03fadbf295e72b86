"""Interactive terminal dashboard for Kubernetes pods."""

__version__ = "0.1.0"
