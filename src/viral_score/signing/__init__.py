"""
Signing Layer - attestations the settlement contract can verify.

This module provides:
    - MessageSigner: EIP-191 signing with the oracle key
    - ScoreSigner: signs and records pair scores
    - NonceAllocator: gap-free per-pool nonces
    - pair_message_hash / epoch_message_hash: exact encodings
"""

from .messages import encode_epoch, epoch_message_hash, pair_message_hash
from .signer import MessageSigner, NonceAllocator, ScoreSigner, SignedEpoch, SignedScore

__all__ = [
    "MessageSigner",
    "NonceAllocator",
    "ScoreSigner",
    "SignedEpoch",
    "SignedScore",
    "encode_epoch",
    "epoch_message_hash",
    "pair_message_hash",
]
