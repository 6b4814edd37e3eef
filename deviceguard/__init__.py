"""Device ownership registry and transfer service."""

__version__ = "0.1.0"
