"""Hedera consensus-service gateway: Hiero SDK for writes, mirror node for reads."""

from provenant.hedera.gateway import HederaNetwork
from provenant.hedera.mirror import MirrorNodeClient, MirrorSubscription
from provenant.hedera.sdk import HieroSubmitter, build_submitter

__all__ = [
    "HederaNetwork",
    "MirrorNodeClient",
    "MirrorSubscription",
    "HieroSubmitter",
    "build_submitter",
]
