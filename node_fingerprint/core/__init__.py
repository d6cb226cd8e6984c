"""Core primitives for node-fingerprint."""

from .merger import NodeMerger, merge_networks
from .models import (
    FingerprintResponse,
    NetworkResource,
    Node,
    Resources,
    ResourceUpdate,
)

__all__ = [
    "FingerprintResponse",
    "NetworkResource",
    "Node",
    "NodeMerger",
    "Resources",
    "ResourceUpdate",
    "merge_networks",
]
