"""Shared fixtures: a temp-dir SQLite market wired to an in-memory oracle."""

import pytest

from gavel.api import MarketService
from gavel.core.config import MarketConfig
from gavel.core.models import Account
from gavel.core.storage import StorageManager
from gavel.oracle import InMemoryBalanceOracle

T0 = 1_700_000_000
HOUR = 3600
START = T0 + HOUR
END = START + 2 * HOUR
BIDDING = START + 60


def account_id_for(n: int) -> str:
    """Deterministic 128-hex-char account id."""
    return f"{n:0128x}"


class MarketHarness:
    """Thin helpers over a MarketService for building test states."""

    def __init__(self, service: MarketService, oracle: InMemoryBalanceOracle):
        self.service = service
        self.oracle = oracle
        self.storage = service.storage
        self.config = service.config
        self.ledger = service.ledger
        self.lifecycle = service.lifecycle
        self.cascade = service.cascade
        self.moderation = service.moderation
        self.notifier = service.notifier

    def account(self, n: int, balance: int = 0, strikes: int = 0, restricted: bool = False) -> str:
        account_id = account_id_for(n)
        self.storage.insert_account(Account(
            account_id=account_id,
            strike_count=strikes,
            is_restricted=restricted,
            created_at=T0,
        ))
        self.oracle.set_balance(account_id, balance)
        return account_id

    def auction(self, creator: str, reserve: int = 100, increment: int = 10,
                start: int = START, end: int = END, title: str = "Harbour at dusk",
                tags=("art",)) -> str:
        auction = self.lifecycle.create_auction(
            creator,
            title,
            "A generative seascape in one edition.",
            "ipfs://artwork",
            list(tags),
            reserve,
            increment,
            start,
            end,
            T0,
        )
        return auction.auction_id

    def live_auction(self, creator: str, **kwargs) -> str:
        auction_id = self.auction(creator, **kwargs)
        self.lifecycle.tick(kwargs.get("start", START))
        return auction_id

    def bid(self, auction_id: str, bidder: str, amount: int, now: int = BIDDING):
        return self.ledger.place_bid(auction_id, bidder, amount, now)

    def end(self, end: int = END):
        return self.lifecycle.tick(end)

    def notifications(self, account_id: str, kind: str = None):
        items = self.notifier.list(account_id)
        return [n for n in items if kind is None or n.kind == kind]


@pytest.fixture
def cfg():
    return MarketConfig(cron_secret="cron-secret", admin_token="admin-secret")


@pytest.fixture
def storage(tmp_path):
    store = StorageManager(tmp_path / "data")
    yield store
    store.close()


@pytest.fixture
def oracle():
    return InMemoryBalanceOracle()


@pytest.fixture
def service(storage, oracle, cfg):
    return MarketService(storage, oracle, cfg, clock=lambda: T0)


@pytest.fixture
def market(service, oracle):
    return MarketHarness(service, oracle)


@pytest.fixture
def seller(market):
    return market.account(1)


@pytest.fixture
def bidders(market):
    """Four funded bidders."""
    return [market.account(10 + i, balance=1_000_000) for i in range(4)]
