from __future__ import annotations

import asyncio
import logging
import re
from typing import Optional

from web3 import Web3
from web3.exceptions import TransactionNotFound

from .errors import PaymentRejected, TransientProviderError

log = logging.getLogger(__name__)

DEFAULT_RPC_URL = "https://mainnet.base.org"
PAYMENT_TOLERANCE = 0.99
MIN_CONFIRMATIONS = 1
TX_HASH = re.compile(r"0x[0-9a-fA-F]{64}")


class PaymentVerifier:
    """Checks a submitted Base transaction against an expected payment."""

    def __init__(self, *, rpc_url: Optional[str] = None, client: Optional[Web3] = None) -> None:
        self.rpc_url = rpc_url or DEFAULT_RPC_URL
        if client is not None:
            self.client = client
        else:
            self.client = Web3(Web3.HTTPProvider(self.rpc_url))

    async def check_connection(self) -> bool:
        loop = asyncio.get_running_loop()
        try:
            block = await loop.run_in_executor(None, lambda: self.client.eth.block_number)
        except Exception as exc:
            log.warning("Base network connection error (%s): %s", self.rpc_url, exc)
            return False
        log.info("connected to Base network at block %s", block)
        return True

    async def verify(self, reference: str, expected_amount: float, destination: str) -> float:
        """Return the amount paid in ETH, or raise ``PaymentRejected``."""
        if not TX_HASH.fullmatch(reference or ""):
            raise PaymentRejected(PaymentRejected.NOT_FOUND)

        def _verify() -> float:
            try:
                transaction = self.client.eth.get_transaction(reference)
            except TransactionNotFound:
                raise PaymentRejected(PaymentRejected.NOT_FOUND)
            except ValueError as exc:
                # malformed hashes are rejected by the node before lookup
                log.info("transaction lookup rejected for %s: %s", reference, exc)
                raise PaymentRejected(PaymentRejected.NOT_FOUND)
            if not transaction:
                raise PaymentRejected(PaymentRejected.NOT_FOUND)

            try:
                receipt = self.client.eth.get_transaction_receipt(reference)
            except TransactionNotFound:
                raise PaymentRejected(PaymentRejected.NOT_CONFIRMED)
            if not receipt:
                raise PaymentRejected(PaymentRejected.NOT_CONFIRMED)
            if not receipt["status"]:
                raise PaymentRejected(PaymentRejected.FAILED)

            recipient = str(transaction.get("to") or "")
            if not destination or recipient.lower() != destination.lower():
                raise PaymentRejected(PaymentRejected.WRONG_DESTINATION)

            amount_paid = float(self.client.from_wei(transaction["value"], "ether"))
            if amount_paid < expected_amount * PAYMENT_TOLERANCE:
                raise PaymentRejected(
                    PaymentRejected.INSUFFICIENT_AMOUNT,
                    f"Expected {expected_amount} ETH but received {amount_paid} ETH",
                )

            confirmations = self.client.eth.block_number - receipt["blockNumber"]
            if confirmations < MIN_CONFIRMATIONS:
                raise PaymentRejected(PaymentRejected.NOT_CONFIRMED)
            return amount_paid

        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, _verify)
        except PaymentRejected as exc:
            log.info("payment %s rejected: %s", reference, exc.reason)
            raise
        except Exception as exc:
            log.warning("Base RPC failure while verifying %s: %s", reference, exc)
            raise TransientProviderError(str(exc)) from exc
