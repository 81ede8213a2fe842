import pytest

from devices.hori import HoriSession
from fakes import FakeTransport, RecordingSink

REPORT_ENDPOINT = 0x81


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def session(transport, sink):
    return HoriSession(transport, sink, REPORT_ENDPOINT)
