"""Filling, signing, broadcasting and confirming a single transaction.

Every helper takes the ``AsyncWeb3`` it should talk to, so a client with an
injected provider signs and waits on the same endpoint it simulated against.
"""

import asyncio
import math
from collections.abc import Awaitable, Callable
from typing import Any

from eth_account import Account
from hexbytes import HexBytes
from loguru import logger
from web3 import AsyncWeb3

from cabac_dex.core.constants.base import (
    DEFAULT_CONFIRMATIONS,
    DEFAULT_TRANSACTION_TIMEOUT,
    GAS_BUFFER_MULTIPLIER,
    MAX_BASE_FEE_GROWTH_MULTIPLIER,
    SUGGESTED_GAS_PRICE_MULTIPLIER,
    SUGGESTED_PRIORITY_FEE_MULTIPLIER,
)
from cabac_dex.core.constants.chains import PRE_EIP_1559_CHAIN_IDS

SignCallback = Callable[[dict], Awaitable[bytes]]

# EIP-1193 "user rejected request"
_USER_REJECTED_CODE = 4001
_USER_REJECTED_MARKERS = ("user rejected", "user denied", "rejected by user")
_FEE_HISTORY_BLOCKS = 10
_FEE_HISTORY_PERCENTILE = 80


class TransactionRevertedError(RuntimeError):
    def __init__(self, txn_hash: str, receipt: dict[str, Any] | None = None):
        self.txn_hash = txn_hash
        self.receipt = dict(receipt or {})
        gas_used = int(self.receipt.get("gasUsed") or 0)
        suffix = f" gasUsed={gas_used}" if gas_used else ""
        super().__init__(f"Transaction reverted (status=0): {txn_hash}{suffix}")


class UserRejectedError(RuntimeError):
    """The signer declined to sign the transaction."""


def is_user_rejection(exc: BaseException) -> bool:
    if isinstance(exc, UserRejectedError):
        return True
    if getattr(exc, "code", None) == _USER_REJECTED_CODE:
        return True
    text = str(exc).lower()
    return any(marker in text for marker in _USER_REJECTED_MARKERS)


def _hex_hash(value: Any) -> str:
    return HexBytes(value).to_0x_hex()


def _sender(transaction: dict) -> str:
    if "from" not in transaction:
        raise ValueError("Transaction does not contain from address")
    return AsyncWeb3.to_checksum_address(transaction["from"])


async def fill_gas_limit(web3: AsyncWeb3, transaction: dict) -> dict:
    transaction = dict(transaction)
    # a stale limit would cap the estimate
    transaction.pop("gas", None)
    estimate = await web3.eth.estimate_gas(transaction, block_identifier="latest")
    transaction["gas"] = int(math.ceil(estimate * GAS_BUFFER_MULTIPLIER))
    return transaction


async def fill_nonce(web3: AsyncWeb3, transaction: dict) -> dict:
    transaction = dict(transaction)
    transaction["nonce"] = await web3.eth.get_transaction_count(
        _sender(transaction), block_identifier="pending"
    )
    return transaction


async def fill_fees(web3: AsyncWeb3, transaction: dict) -> dict:
    transaction = dict(transaction)
    if int(transaction.get("chainId") or 0) in PRE_EIP_1559_CHAIN_IDS:
        gas_price = await web3.eth.gas_price
        transaction["gasPrice"] = int(gas_price * SUGGESTED_GAS_PRICE_MULTIPLIER)
        return transaction

    block = await web3.eth.get_block("latest")
    history = await web3.eth.fee_history(
        _FEE_HISTORY_BLOCKS, "latest", [_FEE_HISTORY_PERCENTILE]
    )
    tips = [reward[0] for reward in history.reward] or [0]
    priority_fee = sum(tips) // len(tips)
    transaction["maxPriorityFeePerGas"] = int(
        priority_fee * SUGGESTED_PRIORITY_FEE_MULTIPLIER
    )
    transaction["maxFeePerGas"] = int(
        block.baseFeePerGas * MAX_BASE_FEE_GROWTH_MULTIPLIER
        + priority_fee * SUGGESTED_PRIORITY_FEE_MULTIPLIER
    )
    return transaction


async def prepare_transaction(web3: AsyncWeb3, transaction: dict) -> dict:
    transaction = await fill_gas_limit(web3, transaction)
    transaction = await fill_nonce(web3, transaction)
    return await fill_fees(web3, transaction)


async def sign_and_send(
    web3: AsyncWeb3, transaction: dict, sign_callback: SignCallback
) -> str:
    """Fill, sign and broadcast ``transaction``; returns the 0x-prefixed hash.

    A wallet refusal is re-raised as ``UserRejectedError``.
    """
    if sign_callback is None:
        raise ValueError("sign_callback must be provided to send transaction")

    transaction = await prepare_transaction(web3, transaction)
    logger.info(f"Signing transaction to {transaction.get('to')} nonce={transaction['nonce']}")
    try:
        signed = await sign_callback(transaction)
    except Exception as exc:
        if is_user_rejection(exc):
            raise UserRejectedError(str(exc) or "User rejected the request") from exc
        raise
    txn_hash = _hex_hash(await web3.eth.send_raw_transaction(signed))
    logger.info(f"Transaction broadcasted: {txn_hash}")
    return txn_hash


async def wait_for_transaction_receipt(
    web3: AsyncWeb3,
    txn_hash: str,
    *,
    timeout: float = DEFAULT_TRANSACTION_TIMEOUT,
    confirmations: int = DEFAULT_CONFIRMATIONS,
    poll_interval: float = 0.25,
    on_receipt: Callable[[dict], None] | None = None,
) -> dict:
    """Wait until ``txn_hash`` is mined and ``confirmations`` blocks deep.

    ``timeout`` is handed to web3's own receipt polling; no extra deadline is
    applied while counting confirmations. ``on_receipt`` fires once the
    receipt is available, before confirmations are counted.
    """
    if isinstance(txn_hash, str) and not txn_hash.startswith("0x"):
        txn_hash = f"0x{txn_hash}"

    receipt = dict(
        await web3.eth.wait_for_transaction_receipt(
            txn_hash, timeout=timeout, poll_latency=poll_interval
        )
    )
    if int(receipt.get("status", 1)) == 0:
        raise TransactionRevertedError(txn_hash, receipt)

    if on_receipt is not None:
        on_receipt(receipt)

    target_block = int(receipt["blockNumber"]) + max(1, int(confirmations)) - 1
    while await web3.eth.block_number < target_block:
        await asyncio.sleep(poll_interval)
    return receipt


def make_local_sign_callback(private_key: str) -> SignCallback:
    """Sign callback backed by a local private key (scripts and tests)."""
    account = Account.from_key(private_key)

    async def sign_callback(tx: dict) -> bytes:
        signed = account.sign_transaction(tx)
        return signed.raw_transaction

    return sign_callback
