from types import SimpleNamespace

import pytest
from web3.exceptions import TransactionNotFound

from conftest import WALLET
from core.errors import PaymentRejected, TransientProviderError
from core.payments import PaymentVerifier

TX = "0x" + "12" * 32
WEI = 10**18


class FakeEth:
    def __init__(self, transaction=None, receipt=None, block_number=110, error=None):
        self.transaction = transaction
        self.receipt = receipt
        self.block_number = block_number
        self.error = error

    def get_transaction(self, reference):
        if self.error:
            raise self.error
        if self.transaction is None:
            raise TransactionNotFound(f"Transaction with hash {reference} not found")
        return self.transaction

    def get_transaction_receipt(self, reference):
        if self.receipt is None:
            raise TransactionNotFound(f"Transaction with hash {reference} not found")
        return self.receipt


def verifier_for(**eth):
    client = SimpleNamespace(eth=FakeEth(**eth), from_wei=lambda value, unit: value / WEI)
    return PaymentVerifier(client=client)


def paid(amount, to=WALLET):
    return {"to": to, "value": int(amount * WEI)}


async def reason_for(verifier, reference=TX, price=0.1):
    with pytest.raises(PaymentRejected) as excinfo:
        await verifier.verify(reference, price, WALLET)
    return excinfo.value.reason


@pytest.mark.asyncio
async def test_valid_payment_returns_amount():
    verifier = verifier_for(transaction=paid(0.1), receipt={"status": 1, "blockNumber": 100})
    assert await verifier.verify(TX, 0.1, WALLET.lower()) == pytest.approx(0.1)


@pytest.mark.asyncio
async def test_small_rounding_shortfall_is_accepted():
    verifier = verifier_for(transaction=paid(0.0995), receipt={"status": 1, "blockNumber": 100})
    assert await verifier.verify(TX, 0.1, WALLET) == pytest.approx(0.0995)


@pytest.mark.asyncio
async def test_rejections():
    receipt = {"status": 1, "blockNumber": 100}
    assert await reason_for(verifier_for()) == PaymentRejected.NOT_FOUND
    assert await reason_for(verifier_for(), reference="0xnothex") == PaymentRejected.NOT_FOUND
    assert await reason_for(verifier_for(transaction=paid(0.1))) == PaymentRejected.NOT_CONFIRMED
    assert (
        await reason_for(verifier_for(transaction=paid(0.1), receipt={"status": 0, "blockNumber": 100}))
        == PaymentRejected.FAILED
    )
    assert (
        await reason_for(verifier_for(transaction=paid(0.1, to="0x" + "0" * 40), receipt=receipt))
        == PaymentRejected.WRONG_DESTINATION
    )
    assert (
        await reason_for(verifier_for(transaction=paid(0.05), receipt=receipt))
        == PaymentRejected.INSUFFICIENT_AMOUNT
    )
    assert (
        await reason_for(verifier_for(transaction=paid(0.1), receipt=receipt, block_number=100))
        == PaymentRejected.NOT_CONFIRMED
    )


@pytest.mark.asyncio
async def test_insufficient_amount_message_names_both_amounts():
    verifier = verifier_for(transaction=paid(0.05), receipt={"status": 1, "blockNumber": 100})
    with pytest.raises(PaymentRejected) as excinfo:
        await verifier.verify(TX, 0.1, WALLET)
    assert "Expected 0.1 ETH but received 0.05 ETH" in excinfo.value.message


@pytest.mark.asyncio
async def test_rpc_outage_is_transient():
    verifier = verifier_for(error=ConnectionError("node down"))
    with pytest.raises(TransientProviderError):
        await verifier.verify(TX, 0.1, WALLET)


@pytest.mark.asyncio
async def test_check_connection_reports_failure():
    class Offline:
        @property
        def block_number(self):
            raise ConnectionError("node down")

    assert await PaymentVerifier(client=SimpleNamespace(eth=Offline())).check_connection() is False
    assert await verifier_for().check_connection() is True
