"""
Standard Merkle tree over (bytes32 poolId, uint256 score, uint256 epoch) leaves.

Compatible with OpenZeppelin's StandardMerkleTree and MerkleProof.sol:
- leaf hash = keccak256(keccak256(abi.encode(poolId, score, epoch)))
- internal node = keccak256 of the two children in ascending byte order
- leaves are sorted by hash, so input order never changes the root
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from eth_abi import encode
from eth_abi.exceptions import EncodingError
from eth_utils import decode_hex, encode_hex, keccak

from viral_score.errors import EmptyBatchError

logger = logging.getLogger(__name__)

LEAF_TYPES = ["bytes32", "uint256", "uint256"]


@dataclass(frozen=True)
class MerkleLeaf:
    """One committed pool score."""
    pool_id: str
    score: int
    epoch: int

    def encode(self) -> bytes:
        return encode(LEAF_TYPES, [decode_hex(self.pool_id), self.score, self.epoch])

    def hash(self) -> bytes:
        return keccak(keccak(self.encode()))


@dataclass(frozen=True)
class MerkleProof:
    """Inclusion proof for one leaf against a checkpoint root."""
    pool_id: str
    score: int
    epoch: int
    proof: list[str] = field(default_factory=list)
    root: str = ""

    def to_dict(self) -> dict:
        return {
            "poolId": self.pool_id,
            "score": self.score,
            "epoch": self.epoch,
            "proof": list(self.proof),
            "root": self.root,
        }


def hash_pair(a: bytes, b: bytes) -> bytes:
    """Commutative node hash."""
    return keccak(a + b) if a <= b else keccak(b + a)


class StandardMerkleTree:
    """
    Complete binary tree stored as a flat array.

    tree[0] is the root; leaves occupy the last n slots in reverse
    sorted order, matching the OpenZeppelin layout so proofs are
    byte-identical to the JS library's.
    """

    def __init__(self, leaves: Iterable[MerkleLeaf]) -> None:
        hashed = [(leaf.hash(), leaf) for leaf in leaves]
        if not hashed:
            raise EmptyBatchError("Cannot build merkle tree with no leaves")

        hashed.sort(key=lambda item: item[0])
        self._leaves: list[MerkleLeaf] = [leaf for _, leaf in hashed]

        size = 2 * len(hashed) - 1
        tree: list[bytes] = [b""] * size
        for i, (leaf_hash, _) in enumerate(hashed):
            tree[size - 1 - i] = leaf_hash
        for i in range(size - 1 - len(hashed), -1, -1):
            tree[i] = hash_pair(tree[2 * i + 1], tree[2 * i + 2])
        self._tree = tree

        # pool_id -> tree index
        self._index: dict[str, int] = {}
        for i, leaf in enumerate(self._leaves):
            self._index[leaf.pool_id.lower()] = size - 1 - i

    def __len__(self) -> int:
        return len(self._leaves)

    @property
    def root(self) -> str:
        return encode_hex(self._tree[0])

    @property
    def leaves(self) -> list[MerkleLeaf]:
        """Leaves in sorted-hash order."""
        return list(self._leaves)

    def leaf_for(self, pool_id: str) -> Optional[MerkleLeaf]:
        index = self._index.get(pool_id.lower())
        if index is None:
            return None
        return self._leaves[len(self._tree) - 1 - index]

    def get_proof(self, pool_id: str) -> Optional[MerkleProof]:
        """Sibling path from the pool's leaf to the root, or None if absent."""
        index = self._index.get(pool_id.lower())
        if index is None:
            return None

        leaf = self._leaves[len(self._tree) - 1 - index]
        path: list[str] = []
        i = index
        while i > 0:
            sibling = i + 1 if i % 2 == 1 else i - 1
            path.append(encode_hex(self._tree[sibling]))
            i = (i - 1) // 2

        return MerkleProof(
            pool_id=leaf.pool_id,
            score=leaf.score,
            epoch=leaf.epoch,
            proof=path,
            root=self.root,
        )


def process_proof(leaf_hash: bytes, proof: Sequence[str]) -> bytes:
    computed = leaf_hash
    for node in proof:
        computed = hash_pair(decode_hex(node), computed)
    return computed


def verify_proof(proof: MerkleProof) -> bool:
    """
    Check a proof against its root.

    Malformed input (bad hex, wrong widths, negative numbers) is an
    invalid proof, not an error.
    """
    try:
        leaf = MerkleLeaf(pool_id=proof.pool_id, score=int(proof.score), epoch=int(proof.epoch))
        computed = process_proof(leaf.hash(), proof.proof)
        return computed == decode_hex(proof.root)
    except (ValueError, TypeError, EncodingError) as e:
        logger.debug(f"Proof for {proof.pool_id} rejected as malformed: {e}")
        return False
