"""
Data models mirroring the ViralScoreReporter contract's structs.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from eth_utils import is_address, to_checksum_address

from viral_score.errors import ValidationError

VALID_RANKS = (1, 2, 3)
MAX_BIN_STEP = 2**16 - 1


@dataclass(frozen=True)
class ViralPair:
    """
    One pool submitted for an epoch.

    Attributes:
        token_x: Meme token address
        token_y: Quote token address
        bin_step: Liquidity-book bin step of the pool (uint16)
        rank: Token rank 1-3, 1 being the highest score
    """
    token_x: str
    token_y: str
    bin_step: int
    rank: int

    def __post_init__(self):
        for name in ("token_x", "token_y"):
            if not is_address(getattr(self, name)):
                raise ValidationError(f"{name} is not an address: {getattr(self, name)}")
        if self.rank not in VALID_RANKS:
            raise ValidationError(f"Rank must be 1, 2 or 3, got {self.rank}")
        if not (0 <= self.bin_step <= MAX_BIN_STEP):
            raise ValidationError(f"bin_step out of uint16 range: {self.bin_step}")

    def as_tuple(self) -> tuple[str, str, int, int]:
        """ABI tuple (address, address, uint16, uint8)."""
        return (
            to_checksum_address(self.token_x),
            to_checksum_address(self.token_y),
            self.bin_step,
            self.rank,
        )

    @classmethod
    def from_tuple(cls, raw) -> "ViralPair":
        token_x, token_y, bin_step, rank = raw
        return cls(token_x=token_x, token_y=token_y, bin_step=int(bin_step), rank=int(rank))


@dataclass(frozen=True)
class SubmissionReceipt:
    """Confirmed submitEpoch transaction."""
    epoch: int
    tx_hash: str
    pairs_count: int
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
