"""
Merkle Layer - verifiable checkpoints of pair scores.

This module provides:
    - StandardMerkleTree: OpenZeppelin-compatible tree over (poolId, score, epoch)
    - MerkleLeaf / MerkleProof: leaf and proof values
    - verify_proof: pure proof check, never raises
    - MerkleCheckpointBuilder: persists checkpoints under sequential epochs
"""

from .checkpoint import CheckpointResult, MerkleCheckpointBuilder
from .tree import MerkleLeaf, MerkleProof, StandardMerkleTree, verify_proof

__all__ = [
    "CheckpointResult",
    "MerkleCheckpointBuilder",
    "MerkleLeaf",
    "MerkleProof",
    "StandardMerkleTree",
    "verify_proof",
]
