GAS_BUFFER_MULTIPLIER = 1.1
SUGGESTED_PRIORITY_FEE_MULTIPLIER = 1.5
SUGGESTED_GAS_PRICE_MULTIPLIER = 1.5
MAX_BASE_FEE_GROWTH_MULTIPLIER = 2

MAX_UINT256 = 2**256 - 1
MAX_UINT128 = 2**128 - 1

# Slippage is tracked in basis points; 50 bps == 0.5%.
DEFAULT_SLIPPAGE_BPS = 50
SLIPPAGE_PRESETS_PERCENT = (0.1, 0.5, 1.0)
SLIPPAGE_FRONTRUN_WARNING_PERCENT = 1.0
SLIPPAGE_FAILURE_WARNING_PERCENT = 5.0

# Swap and liquidity deadlines (seconds from "now")
SWAP_DEADLINE_SECONDS = 20 * 60
LIQUIDITY_DEADLINE_SECONDS = 20 * 60

# Quote inputs settle for this long before a quote is fetched.
DEFAULT_QUOTE_DEBOUNCE_S = 0.5

# Base L2 (and some RPC providers) can occasionally take >2 minutes to index/return receipts,
# even if the transaction is eventually mined.
DEFAULT_TRANSACTION_TIMEOUT = 180  # Transaction receipt timeout (seconds)
DEFAULT_CONFIRMATIONS = 1

ADAPTER_ALLOWANCE = "ALLOWANCE"
ADAPTER_LIQUIDITY = "LIQUIDITY"
ADAPTER_SWAP = "SWAP"
ADAPTER_MULTICALL = "MULTICALL"
