CHAIN_ID_ETHEREUM = 1
CHAIN_ID_BASE = 8453
CHAIN_ID_SEPOLIA = 11155111
CHAIN_ID_BASE_SEPOLIA = 84532
CHAIN_ID_CELO_SEPOLIA = 11142220

CHAIN_CODE_TO_ID = {
    "ethereum": CHAIN_ID_ETHEREUM,
    "mainnet": CHAIN_ID_ETHEREUM,
    "base": CHAIN_ID_BASE,
    "sepolia": CHAIN_ID_SEPOLIA,
    "base-sepolia": CHAIN_ID_BASE_SEPOLIA,
    "celo-sepolia": CHAIN_ID_CELO_SEPOLIA,
}

CHAIN_ID_TO_CODE: dict[int, str] = {
    v: k for k, v in CHAIN_CODE_TO_ID.items() if k != "mainnet"
}

SUPPORTED_CHAINS = [
    CHAIN_ID_ETHEREUM,
    CHAIN_ID_BASE,
    CHAIN_ID_SEPOLIA,
    CHAIN_ID_BASE_SEPOLIA,
    CHAIN_ID_CELO_SEPOLIA,
]

NATIVE_SYMBOLS: dict[int, str] = {
    CHAIN_ID_ETHEREUM: "ETH",
    CHAIN_ID_BASE: "ETH",
    CHAIN_ID_SEPOLIA: "ETH",
    CHAIN_ID_BASE_SEPOLIA: "ETH",
    CHAIN_ID_CELO_SEPOLIA: "CELO",
}

CHAIN_EXPLORER_URLS: dict[int, str] = {
    CHAIN_ID_ETHEREUM: "https://etherscan.io/",
    CHAIN_ID_BASE: "https://basescan.org/",
    CHAIN_ID_SEPOLIA: "https://sepolia.etherscan.io/",
    CHAIN_ID_BASE_SEPOLIA: "https://sepolia.basescan.org/",
    CHAIN_ID_CELO_SEPOLIA: "https://celo-sepolia.blockscout.com/",
}


def explorer_url(chain_id: int, kind: str, value: str) -> str | None:
    """Explorer link for an address or tx hash (kind is "address" or "tx")."""
    base = CHAIN_EXPLORER_URLS.get(int(chain_id))
    if not base:
        return None
    return f"{base}{kind}/{value}"

# Chains whose blocks carry oversized extraData (clique/IBFT-style sealing)
POA_MIDDLEWARE_CHAIN_IDS: set[int] = {CHAIN_ID_CELO_SEPOLIA}

PRE_EIP_1559_CHAIN_IDS: set[int] = set()
