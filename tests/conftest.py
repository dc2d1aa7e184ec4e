import pytest

from factories import PEPE, FakeMetadataSource, FakeTransactionSource
from tracker.scheduler import MonitorScheduler
from tracker.token_cache import TokenMetadataCache
from tracker.wallet_poller import WalletPoller


@pytest.fixture
def tx_source():
    return FakeTransactionSource()


@pytest.fixture
def meta_source():
    return FakeMetadataSource({"MintAAA111": PEPE})


@pytest.fixture
def token_cache(meta_source):
    return TokenMetadataCache(meta_source)


@pytest.fixture
def poller(tx_source, token_cache):
    return WalletPoller(tx_source, token_cache)


@pytest.fixture
def scheduler(poller):
    # Long interval: tests drive tick() by hand
    sched = MonitorScheduler(poller, interval=3600, workers=4)
    yield sched
    sched.stop()
