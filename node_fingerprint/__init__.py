"""node-fingerprint: environment discovery for cluster worker nodes."""

from .version import __version__

__all__ = ["__version__"]
