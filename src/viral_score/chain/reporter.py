"""
Client for the ViralScoreReporter settlement contract.

Reads the external epoch counters and the trusted signer, and submits
signed epochs. The write path mirrors a plain web3 transaction flow:
build_transaction -> sign -> send_raw_transaction -> wait for receipt.

Error mapping:
- RPC unreachable / provider errors -> ExternalUnavailableError
- revert, status 0, receipt timeout -> OnChainRejectedError
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Optional, Sequence

import aiohttp
from eth_account import Account
from eth_utils import encode_hex, keccak, to_checksum_address
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import ContractCustomError, ContractLogicError, TimeExhausted, Web3Exception

from viral_score.chain.abi import VIRAL_SCORE_REPORTER_ABI
from viral_score.chain.models import SubmissionReceipt, ViralPair
from viral_score.errors import ConfigurationError, ExternalUnavailableError, OnChainRejectedError

logger = logging.getLogger(__name__)

DEFAULT_RPC_URL = "https://rpc.insectarium.memecore.net"
DEFAULT_CHAIN_ID = 43522
DEFAULT_REPORTER_ADDRESS = "0x639323a363Da20E755c3D38C14d59FbCC67446bC"

RPC_ERRORS = (Web3Exception, aiohttp.ClientError, asyncio.TimeoutError, OSError)

# 4-byte selector -> custom error name
CUSTOM_ERRORS = {
    encode_hex(keccak(text=f"{item['name']}()")[:4]): item["name"]
    for item in VIRAL_SCORE_REPORTER_ABI
    if item["type"] == "error"
}


def decode_custom_error(data: Any) -> str:
    """Name of a reporter custom error from revert data, or the raw data."""
    raw = data if isinstance(data, str) else str(data)
    return CUSTOM_ERRORS.get(raw[:10].lower(), raw)


class ViralScoreReporterClient:
    """
    Async client for the ViralScoreReporter contract.

    Usage:
        client = ViralScoreReporterClient(rpc_url, reporter_address, private_key=key)
        if await client.current_epoch() > await client.last_submitted_epoch():
            receipt = await client.submit_epoch(epoch, pairs, signature)
    """

    def __init__(
        self,
        rpc_url: str = DEFAULT_RPC_URL,
        contract_address: str = DEFAULT_REPORTER_ADDRESS,
        chain_id: int = DEFAULT_CHAIN_ID,
        private_key: Optional[str] = None,
        receipt_timeout: float = 120.0,
        web3: Optional[AsyncWeb3] = None,
    ) -> None:
        self._web3 = web3 or AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self._address = to_checksum_address(contract_address)
        self._contract = self._web3.eth.contract(address=self._address, abi=VIRAL_SCORE_REPORTER_ABI)
        self._chain_id = chain_id
        self._account = Account.from_key(private_key) if private_key else None
        self._receipt_timeout = receipt_timeout

    @property
    def contract_address(self) -> str:
        return self._address

    @property
    def sender(self) -> Optional[str]:
        return self._account.address if self._account is not None else None

    async def _read(self, name: str, call: Awaitable[Any]) -> Any:
        try:
            return await call
        except asyncio.CancelledError:
            raise
        except ContractLogicError as e:
            raise OnChainRejectedError(f"{name}() reverted: {e}") from e
        except RPC_ERRORS as e:
            raise ExternalUnavailableError(f"RPC call {name}() failed: {e}", source="chain") from e

    async def is_connected(self) -> bool:
        try:
            return bool(await self._web3.is_connected())
        except RPC_ERRORS as e:
            logger.warning(f"RPC connectivity check failed: {e}")
            return False

    async def current_epoch(self) -> int:
        return int(await self._read("getCurrentEpoch", self._contract.functions.getCurrentEpoch().call()))

    async def last_submitted_epoch(self) -> int:
        return int(await self._read("lastEpoch", self._contract.functions.lastEpoch().call()))

    async def trusted_signer(self) -> str:
        address = await self._read("trustedSigner", self._contract.functions.trustedSigner().call())
        return to_checksum_address(address)

    async def epoch_duration(self) -> int:
        return int(await self._read("EPOCH_DURATION", self._contract.functions.EPOCH_DURATION().call()))

    async def active_viral_pairs(self) -> list[ViralPair]:
        raw = await self._read(
            "getAllActiveViralPairs", self._contract.functions.getAllActiveViralPairs().call()
        )
        return [ViralPair.from_tuple(item) for item in raw]

    async def active_viral_pairs_count(self) -> int:
        return int(await self._read(
            "getActiveViralPairsCount", self._contract.functions.getActiveViralPairsCount().call()
        ))

    async def check_signer(self, local_address: Optional[str]) -> bool:
        """Compare the contract's trusted signer with ours; warn on mismatch."""
        if local_address is None:
            return False
        onchain = await self.trusted_signer()
        if onchain != to_checksum_address(local_address):
            logger.warning(
                f"Trusted signer mismatch: contract expects {onchain}, "
                f"local signer is {local_address} - submissions will revert"
            )
            return False
        return True

    async def submit_epoch(
        self,
        epoch: int,
        pairs: Sequence[ViralPair],
        signature: str,
    ) -> SubmissionReceipt:
        """
        Submit a signed epoch and wait for confirmation.

        Raises:
            ConfigurationError: No transaction key configured
            ExternalUnavailableError: RPC unreachable before the tx was sent
            OnChainRejectedError: Reverted, failed or unconfirmed in time
        """
        if self._account is None:
            raise ConfigurationError("No private key configured for epoch submission")

        sender = self._account.address
        try:
            nonce = await self._web3.eth.get_transaction_count(sender)
            gas_price = await self._web3.eth.gas_price
            raw_tx = await self._contract.functions.submitEpoch(
                epoch, [p.as_tuple() for p in pairs], signature
            ).build_transaction({
                "chainId": self._chain_id,
                "from": sender,
                "nonce": nonce,
                "gasPrice": gas_price,
            })
        except asyncio.CancelledError:
            raise
        except ContractCustomError as e:
            reason = decode_custom_error(e.data)
            raise OnChainRejectedError(f"submitEpoch({epoch}) would revert: {reason}") from e
        except ContractLogicError as e:
            raise OnChainRejectedError(f"submitEpoch({epoch}) would revert: {e}") from e
        except RPC_ERRORS as e:
            raise ExternalUnavailableError(
                f"Could not prepare submitEpoch({epoch}): {e}", source="chain"
            ) from e

        signed_tx = self._account.sign_transaction(raw_tx)
        try:
            tx_hash = await self._web3.eth.send_raw_transaction(signed_tx.raw_transaction)
        except asyncio.CancelledError:
            raise
        except RPC_ERRORS as e:
            raise ExternalUnavailableError(
                f"Could not send submitEpoch({epoch}): {e}", source="chain"
            ) from e

        tx_hex = encode_hex(tx_hash)
        logger.info(f"submitEpoch({epoch}) sent with {len(pairs)} pairs, tx: {tx_hex}")

        try:
            receipt = await self._web3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self._receipt_timeout
            )
        except asyncio.CancelledError:
            raise
        except TimeExhausted as e:
            raise OnChainRejectedError(
                f"submitEpoch({epoch}) not confirmed within {self._receipt_timeout:.0f}s",
                tx_hash=tx_hex,
            ) from e
        except RPC_ERRORS as e:
            raise OnChainRejectedError(
                f"submitEpoch({epoch}) confirmation failed: {e}", tx_hash=tx_hex
            ) from e

        if receipt["status"] != 1:
            raise OnChainRejectedError(f"submitEpoch({epoch}) reverted", tx_hash=tx_hex)

        logger.info(f"Epoch {epoch} confirmed in block {receipt.get('blockNumber')}")
        return SubmissionReceipt(
            epoch=epoch,
            tx_hash=tx_hex,
            pairs_count=len(pairs),
            block_number=receipt.get("blockNumber"),
            gas_used=receipt.get("gasUsed"),
        )
