"""Contract ABIs for the ZK Account system."""

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

PROOF_TUPLE = {
    "name": "proof",
    "type": "tuple",
    "components": [
        {"name": "a", "type": "uint256[2]"},
        {"name": "b", "type": "uint256[2][2]"},
        {"name": "c", "type": "uint256[2]"},
        {"name": "publicSignals", "type": "uint256[3]"},
    ],
}

ZK_ACCOUNT_FACTORY_ABI = [
    {
        "name": "createZKAccount",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "_requiresZKProof", "type": "bool"},
            {"name": "_authorizedEmailHash", "type": "uint256"},
            {"name": "_authorizedDomainHash", "type": "uint256"},
            {"name": "_salt", "type": "bytes32"},
        ],
        "outputs": [{"name": "", "type": "address"}],
    },
    {
        "name": "getUserAccounts",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "user", "type": "address"}],
        "outputs": [{"name": "", "type": "address[]"}],
    },
    {
        "name": "predictZKAccountAddress",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "_salt", "type": "bytes32"},
        ],
        "outputs": [{"name": "", "type": "address"}],
    },
]

ZK_ACCOUNT_ABI = [
    {
        "name": "execute",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            PROOF_TUPLE,
            {"name": "target", "type": "address"},
            {"name": "value", "type": "uint256"},
            {"name": "data", "type": "bytes"},
        ],
        "outputs": [],
    },
    {
        "name": "getAccountInfo",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [
            {"name": "owner", "type": "address"},
            {"name": "verifier", "type": "address"},
            {"name": "requiresZKProof", "type": "bool"},
            {"name": "emailHash", "type": "uint256"},
            {"name": "domainHash", "type": "uint256"},
            {"name": "nonce", "type": "uint256"},
        ],
    },
]

DIRECTORY_ABI = [
    {
        "name": "lookup",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "emailHash", "type": "bytes32"}],
        "outputs": [{"name": "", "type": "address"}],
    },
]

ERC20_ABI = [
    {
        "name": "transfer",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "name": "balanceOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "decimals",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint8"}],
    },
]
