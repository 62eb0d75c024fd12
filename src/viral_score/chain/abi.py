"""
ViralScoreReporter contract ABI (the subset the oracle calls).
"""

VIRAL_PAIR_COMPONENTS = [
    {"internalType": "address", "name": "tokenX", "type": "address"},
    {"internalType": "address", "name": "tokenY", "type": "address"},
    {"internalType": "uint16", "name": "binStep", "type": "uint16"},
    {"internalType": "uint8", "name": "rank", "type": "uint8"},
]

VIRAL_SCORE_REPORTER_ABI = [
    {"type": "error", "name": "InvalidEpoch", "inputs": []},
    {"type": "error", "name": "InvalidSignature", "inputs": []},
    {"type": "error", "name": "InvalidRank", "inputs": []},
    {"type": "error", "name": "TooManyPairs", "inputs": []},
    {"type": "error", "name": "PairNotFound", "inputs": []},
    {"type": "error", "name": "ArrayLengthMismatch", "inputs": []},
    {
        "type": "function", "name": "EPOCH_DURATION", "stateMutability": "view",
        "inputs": [], "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function", "name": "MAX_VIRAL_PAIRS", "stateMutability": "view",
        "inputs": [], "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function", "name": "trustedSigner", "stateMutability": "view",
        "inputs": [], "outputs": [{"name": "", "type": "address"}],
    },
    {
        "type": "function", "name": "lastEpoch", "stateMutability": "view",
        "inputs": [], "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function", "name": "getCurrentEpoch", "stateMutability": "view",
        "inputs": [], "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function", "name": "getActiveViralPairsCount", "stateMutability": "view",
        "inputs": [], "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function", "name": "getProtocolShareForRank", "stateMutability": "view",
        "inputs": [{"name": "rank", "type": "uint256"}],
        "outputs": [{"name": "", "type": "uint16"}],
    },
    {
        "type": "function", "name": "getAllActiveViralPairs", "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "tuple[]", "components": VIRAL_PAIR_COMPONENTS}],
    },
    {
        "type": "function", "name": "submitEpoch", "stateMutability": "nonpayable",
        "inputs": [
            {"name": "epoch", "type": "uint256"},
            {"name": "pairs", "type": "tuple[]", "components": VIRAL_PAIR_COMPONENTS},
            {"name": "signature", "type": "bytes"},
        ],
        "outputs": [],
    },
]
