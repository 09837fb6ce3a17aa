import random

import pytest

from core.battle import BattleEngine
from core.catalog import AssetLibrary, Catalog
from core.errors import PaymentRejected
from core.game import Game
from core.ledger import CommerceLedger
from core.store import SessionStore

WALLET = "0x6274bFef22fF551732593A455B5502DD3C1B5E09"
HANDLE = "mentionmon_bot"


class FakeVerifier:
    def __init__(self, reject=None, amount=None):
        self.reject = reject
        self.amount = amount
        self.calls = []

    async def verify(self, reference, expected_amount, destination):
        self.calls.append((reference, expected_amount, destination))
        if self.reject:
            raise PaymentRejected(self.reject)
        return expected_amount if self.amount is None else self.amount


@pytest.fixture
def catalog():
    return Catalog.default()


@pytest.fixture
def store(catalog):
    store = SessionStore(":memory:")
    store.seed_creatures(catalog)
    yield store
    store.close()


@pytest.fixture
def verifier():
    return FakeVerifier()


@pytest.fixture
def ledger(store, catalog, verifier):
    return CommerceLedger(store, catalog, verifier, wallet_address=WALLET)


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def engine(store, catalog, rng):
    return BattleEngine(store, catalog, rng=rng)


@pytest.fixture
def assets(tmp_path):
    return AssetLibrary(tmp_path / "creatures")


@pytest.fixture
def game(catalog, ledger, engine, assets, rng):
    return Game(
        catalog=catalog,
        ledger=ledger,
        battles=engine,
        assets=assets,
        handle=HANDLE,
        rng=rng,
    )
