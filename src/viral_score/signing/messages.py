"""
Byte-exact message encodings for the two signing schemes.

Pair attestation:
    keccak256(abi.encodePacked(bytes32 poolId, uint256 score, uint256 timestamp, uint256 nonce))

Epoch attestation:
    keccak256(abi.encode(uint256 epoch, (address,address,uint16,uint8)[] pairs))

Both hashes are signed as EIP-191 personal messages ("\\x19Ethereum Signed
Message:\\n32" + hash), which is what the contract recovers against.
"""
from __future__ import annotations

from typing import Sequence

from eth_abi import encode
from eth_abi.packed import encode_packed
from eth_utils import decode_hex, keccak

from viral_score.chain.models import ViralPair

PAIR_MESSAGE_TYPES = ["bytes32", "uint256", "uint256", "uint256"]
EPOCH_MESSAGE_TYPES = ["uint256", "(address,address,uint16,uint8)[]"]


def pair_message_hash(pool_id: str, score: int, timestamp: int, nonce: int) -> bytes:
    return keccak(
        encode_packed(PAIR_MESSAGE_TYPES, [decode_hex(pool_id), score, timestamp, nonce])
    )


def encode_epoch(epoch: int, pairs: Sequence[ViralPair]) -> bytes:
    return encode(EPOCH_MESSAGE_TYPES, [epoch, [p.as_tuple() for p in pairs]])


def epoch_message_hash(epoch: int, pairs: Sequence[ViralPair]) -> bytes:
    return keccak(encode_epoch(epoch, pairs))
