import ipaddress
import pytest

from mimir_tracker.crypto import ed25519_generate, sign_address
from mimir_tracker.storage import InMemoryStorage, SQLiteStorage


class FakeClock:
    def __init__(self, now=1_700_000_000):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def keypair():
    return ed25519_generate()


@pytest.fixture
def address():
    return ipaddress.IPv6Address("2001:db8::1").packed


@pytest.fixture
def signature(keypair, address):
    priv, _ = keypair
    return sign_address(priv, address)


@pytest.fixture(params=["sqlite", "memory"])
def store(request, tmp_path, clock):
    if request.param == "sqlite":
        s = SQLiteStorage(str(tmp_path / "mimir.sqlite"), clock=clock)
    else:
        s = InMemoryStorage(clock=clock)
    yield s
    s.close()
