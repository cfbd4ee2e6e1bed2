from .webpubsub import BroadcastChannel, WebPubSubBroadcaster, normalize_group
from .identity import IdentityVerifier, VerifiedIdentity

__all__ = [
    "BroadcastChannel",
    "WebPubSubBroadcaster",
    "normalize_group",
    "IdentityVerifier",
    "VerifiedIdentity",
]
