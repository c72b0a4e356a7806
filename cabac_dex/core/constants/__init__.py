ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Sentinel addresses wallets and token lists use for the chain's native coin.
NATIVE_TOKEN_ADDRESSES = frozenset(
    {
        ZERO_ADDRESS,
        "0xeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeee",
    }
)
