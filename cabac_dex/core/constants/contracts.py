from eth_utils import to_checksum_address

from cabac_dex.core.constants.chains import (
    CHAIN_ID_BASE,
    CHAIN_ID_BASE_SEPOLIA,
    CHAIN_ID_CELO_SEPOLIA,
    CHAIN_ID_ETHEREUM,
    CHAIN_ID_SEPOLIA,
)

# Deployed at the same address on every supported chain
MULTICALL3_ADDRESS = to_checksum_address("0xcA11bde05977b3631167028862bE2a173976CA11")

# Ethereum mainnet (canonical Uniswap v3 periphery)
ETHEREUM_ROUTER = to_checksum_address("0xE592427A0AEce92De3Edee1F18E0157C05861564")
ETHEREUM_POSITION_MANAGER = to_checksum_address(
    "0xC36442b4a4522E871399CD717aBDD847Ab11FE88"
)
ETHEREUM_WETH = to_checksum_address("0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2")
ETHEREUM_QUOTER_V2 = to_checksum_address("0x61fFE014bA17989E743c5F6cB21bF9697530B21e")

# Base
BASE_ROUTER = to_checksum_address("0xe2649752dE1DEb3A7bC7Ad3e1CDcE9eb8535392d")
BASE_POSITION_MANAGER = to_checksum_address(
    "0x4415E20643a50cCa212a2243759F536A547E3AAE"
)
BASE_WETH = to_checksum_address("0x4200000000000000000000000000000000000006")
BASE_QUOTER_V2 = to_checksum_address("0x827eEca8591ae7e641784A5Fb1e4597c029Ab41B")

# Sepolia
SEPOLIA_ROUTER = to_checksum_address("0x3bFA4769FB09eefC5aB096D40Ea009372DE6A227")
SEPOLIA_POSITION_MANAGER = to_checksum_address(
    "0x1238536071E1c577A68CF586AbD578b2B4182373"
)
SEPOLIA_WETH = to_checksum_address("0xfFf9976782d46CC05630D1f6eBAb18b2324d6B14")
SEPOLIA_QUOTER_V2 = to_checksum_address("0x3d4e44Eb1374240CE5F1B871ab261CD16335154A")

# Base Sepolia
BASE_SEPOLIA_ROUTER = to_checksum_address("0x236216C666dbcc76D057539475660dC48f9e0808")
BASE_SEPOLIA_POSITION_MANAGER = to_checksum_address(
    "0x195339564373c25265f954d89Bfa9Ae20136D0Fe"
)
BASE_SEPOLIA_WETH = to_checksum_address("0x4200000000000000000000000000000000000006")
BASE_SEPOLIA_QUOTER_V2 = to_checksum_address(
    "0xAb0dcf765DBd686443950ccAf5bd5FA414a728d1"
)

# Celo Sepolia (the wrapped native slot holds the CELO token contract)
CELO_SEPOLIA_ROUTER = to_checksum_address("0x7671Ac570a0c3d2370E477d8498fFAc2662b3d25")
CELO_SEPOLIA_POSITION_MANAGER = to_checksum_address(
    "0xC4eC102f0420393077aFF8048E467c3DC7246FB1"
)
CELO_SEPOLIA_WETH = to_checksum_address("0x471EcE3750Da237f93B8E339c536989b8978a438")
CELO_SEPOLIA_QUOTER_V2 = to_checksum_address(
    "0xf792Ff903115bAF02A9E77372ecd8264E97Db3d7"
)

CONTRACT_ADDRESSES: dict[int, dict[str, str]] = {
    CHAIN_ID_ETHEREUM: {
        "router": ETHEREUM_ROUTER,
        "position_manager": ETHEREUM_POSITION_MANAGER,
        "weth": ETHEREUM_WETH,
        "quoter_v2": ETHEREUM_QUOTER_V2,
        "multicall3": MULTICALL3_ADDRESS,
    },
    CHAIN_ID_BASE: {
        "router": BASE_ROUTER,
        "position_manager": BASE_POSITION_MANAGER,
        "weth": BASE_WETH,
        "quoter_v2": BASE_QUOTER_V2,
        "multicall3": MULTICALL3_ADDRESS,
    },
    CHAIN_ID_SEPOLIA: {
        "router": SEPOLIA_ROUTER,
        "position_manager": SEPOLIA_POSITION_MANAGER,
        "weth": SEPOLIA_WETH,
        "quoter_v2": SEPOLIA_QUOTER_V2,
        "multicall3": MULTICALL3_ADDRESS,
    },
    CHAIN_ID_BASE_SEPOLIA: {
        "router": BASE_SEPOLIA_ROUTER,
        "position_manager": BASE_SEPOLIA_POSITION_MANAGER,
        "weth": BASE_SEPOLIA_WETH,
        "quoter_v2": BASE_SEPOLIA_QUOTER_V2,
        "multicall3": MULTICALL3_ADDRESS,
    },
    CHAIN_ID_CELO_SEPOLIA: {
        "router": CELO_SEPOLIA_ROUTER,
        "position_manager": CELO_SEPOLIA_POSITION_MANAGER,
        "weth": CELO_SEPOLIA_WETH,
        "quoter_v2": CELO_SEPOLIA_QUOTER_V2,
        "multicall3": MULTICALL3_ADDRESS,
    },
}
