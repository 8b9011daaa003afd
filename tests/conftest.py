import pytest

from ping_exporter.collection.fake_transport import FakeTransport
from ping_exporter.collection.prober import Session


@pytest.fixture
def fake_transport():
    return FakeTransport(reply_delay=0.005)


@pytest.fixture
def make_session():
    def _make(**kwargs):
        params = {"target": "192.0.2.10", "interval": 0.05, "timeout": 0.5, "count": 3, "receive_poll": 0.02}
        params.update(kwargs)
        return Session(**params)
    return _make
