"""
Chain layer test fixtures.

IMPORTANT: No RPC is ever contacted. The AsyncWeb3 instance is a
MagicMock whose contract functions return AsyncMock calls.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest

from viral_score.chain import ViralPair, ViralScoreReporterClient

TEST_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
TEST_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
QUOTE_TOKEN = "0x653e645e3d81a72e71328bc01a04002945e3ef7a"
MEME_TOKEN = "0x1111111111111111111111111111111111111111"


async def _resolved(value):
    return value


def contract_call(return_value=None, side_effect=None):
    """A contract function whose .call() is awaitable."""
    fn = MagicMock()
    fn.return_value.call = AsyncMock(return_value=return_value, side_effect=side_effect)
    return fn


@pytest.fixture
def mock_contract():
    contract = MagicMock()
    contract.functions.getCurrentEpoch = contract_call(480001)
    contract.functions.lastEpoch = contract_call(480000)
    contract.functions.trustedSigner = contract_call(TEST_ADDRESS.lower())
    contract.functions.EPOCH_DURATION = contract_call(3600)
    contract.functions.getActiveViralPairsCount = contract_call(1)
    contract.functions.getAllActiveViralPairs = contract_call([(MEME_TOKEN, QUOTE_TOKEN, 25, 1)])

    submit = MagicMock()
    submit.return_value.build_transaction = AsyncMock(return_value={
        "to": "0x639323a363Da20E755c3D38C14d59FbCC67446bC",
        "data": "0x",
        "value": 0,
        "gas": 250000,
        "gasPrice": 1_000_000_000,
        "nonce": 7,
        "chainId": 43522,
    })
    contract.functions.submitEpoch = submit
    return contract


@pytest.fixture
def mock_web3(mock_contract):
    web3 = MagicMock()
    web3.eth.contract = MagicMock(return_value=mock_contract)
    web3.eth.get_transaction_count = AsyncMock(return_value=7)
    web3.eth.gas_price = _resolved(1_000_000_000)
    web3.eth.send_raw_transaction = AsyncMock(return_value=b"\x12" * 32)
    web3.eth.wait_for_transaction_receipt = AsyncMock(
        return_value={"status": 1, "blockNumber": 1234, "gasUsed": 210000}
    )
    web3.is_connected = AsyncMock(return_value=True)
    return web3


@pytest.fixture
def client(mock_web3):
    return ViralScoreReporterClient(private_key=TEST_PRIVATE_KEY, web3=mock_web3)


@pytest.fixture
def read_only_client(mock_web3):
    return ViralScoreReporterClient(web3=mock_web3)


@pytest.fixture
def pairs():
    return [
        ViralPair(token_x=MEME_TOKEN, token_y=QUOTE_TOKEN, bin_step=25, rank=1),
        ViralPair(token_x=MEME_TOKEN, token_y=QUOTE_TOKEN, bin_step=100, rank=1),
    ]
