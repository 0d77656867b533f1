"""
Federation (Matrix / ActivityPub)
"""
from .activitypub import ActivityPubMapper, federation_username
from .matrix import MatrixEventMapper
from .bridge import FederationBridge, federation_bridge

__all__ = [
    "ActivityPubMapper",
    "MatrixEventMapper",
    "FederationBridge",
    "federation_bridge",
    "federation_username",
]
