"""Static token and pool lists per chain.

Pools are declared with their two token symbols and fee tier; the registry
orders them into (token0, token1) by address. Extra tokens and pools can be
added per chain through the ``registry`` config section.
"""

from eth_utils import to_checksum_address

from cabac_dex.core.constants import ZERO_ADDRESS
from cabac_dex.core.constants.chains import (
    CHAIN_ID_BASE,
    CHAIN_ID_BASE_SEPOLIA,
    CHAIN_ID_CELO_SEPOLIA,
    CHAIN_ID_ETHEREUM,
    CHAIN_ID_SEPOLIA,
)
from cabac_dex.core.constants.contracts import (
    BASE_SEPOLIA_WETH,
    BASE_WETH,
    CELO_SEPOLIA_WETH,
    ETHEREUM_WETH,
    SEPOLIA_WETH,
)

_LOGO_BASE = "https://raw.githubusercontent.com/trustwallet/assets/master/blockchains/ethereum"


def _token(address: str, symbol: str, name: str, decimals: int, logo: str = ""):
    return {
        "address": address if address == ZERO_ADDRESS else to_checksum_address(address),
        "symbol": symbol,
        "name": name,
        "decimals": decimals,
        "logo_uri": logo,
    }


TOKENS_BY_CHAIN: dict[int, list[dict]] = {
    CHAIN_ID_ETHEREUM: [
        _token(ZERO_ADDRESS, "ETH", "Ether", 18, f"{_LOGO_BASE}/info/logo.png"),
        _token(
            ETHEREUM_WETH,
            "WETH",
            "Wrapped Ether",
            18,
            f"{_LOGO_BASE}/assets/{ETHEREUM_WETH}/logo.png",
        ),
        _token(
            "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",
            "USDC",
            "USD Coin",
            6,
            f"{_LOGO_BASE}/assets/0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48/logo.png",
        ),
        _token(
            "0x6B175474E89094C44Da98b954EedeAC495271d0F",
            "DAI",
            "Dai Stablecoin",
            18,
            f"{_LOGO_BASE}/assets/0x6B175474E89094C44Da98b954EedeAC495271d0F/logo.png",
        ),
        _token(
            "0x2260FAC5E5542a773Aa44fBCfeDf7C193bc2C599",
            "WBTC",
            "Wrapped Bitcoin",
            8,
            f"{_LOGO_BASE}/assets/0x2260FAC5E5542a773Aa44fBCfeDf7C193bc2C599/logo.png",
        ),
        _token(
            "0x1f9840a85d5aF5bf1D1762F925BDADdC4201F984",
            "UNI",
            "Uniswap",
            18,
            f"{_LOGO_BASE}/assets/0x1f9840a85d5aF5bf1D1762F925BDADdC4201F984/logo.png",
        ),
    ],
    CHAIN_ID_BASE: [
        _token(ZERO_ADDRESS, "ETH", "Ether", 18),
        _token(BASE_WETH, "WETH", "Wrapped Ether", 18),
        _token("0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913", "USDC", "USD Coin", 6),
    ],
    CHAIN_ID_SEPOLIA: [
        _token(ZERO_ADDRESS, "ETH", "Sepolia Ether", 18),
        _token(SEPOLIA_WETH, "WETH", "Wrapped Ether", 18),
        _token("0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238", "USDC", "USD Coin", 6),
    ],
    CHAIN_ID_BASE_SEPOLIA: [
        _token(ZERO_ADDRESS, "ETH", "Sepolia Ether", 18),
        _token(BASE_SEPOLIA_WETH, "WETH", "Wrapped Ether", 18),
        _token("0x036CbD53842c5426634e7929541eC2318f3dCF7e", "USDC", "USD Coin", 6),
    ],
    CHAIN_ID_CELO_SEPOLIA: [
        _token(ZERO_ADDRESS, "CELO", "Celo", 18),
        _token(CELO_SEPOLIA_WETH, "WCELO", "Celo (ERC-20)", 18),
    ],
}

# (symbol_a, symbol_b, fee, pool address)
POOLS_BY_CHAIN: dict[int, list[tuple[str, str, int, str]]] = {
    CHAIN_ID_ETHEREUM: [
        ("USDC", "WETH", 500, "0x88e6A0c2dDD26FEEb64F039a2c41296FcB3f5640"),
        ("USDC", "WETH", 3000, "0x8ad599c3A0ff1De082011EFDDc58f1908eb6e6D8"),
    ],
    CHAIN_ID_BASE: [
        ("WETH", "USDC", 500, "0xd0b53D9277642d899DF5C87A3966A349A798F224"),
    ],
    CHAIN_ID_SEPOLIA: [],
    CHAIN_ID_BASE_SEPOLIA: [],
    CHAIN_ID_CELO_SEPOLIA: [],
}

FEE_TIER_TICK_SPACING: dict[int, int] = {100: 1, 500: 10, 3000: 60, 10000: 200}
