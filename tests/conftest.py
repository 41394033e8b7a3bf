import pytest

from core.session import TimestampSession
from fakes import DESTINATION, IDENTIFIER, FakeClock, FakeTransport, RecordingReporter


@pytest.fixture
def clock():
    return FakeClock(1000.0)


@pytest.fixture
def transport(clock):
    return FakeTransport(clock)


@pytest.fixture
def reporter():
    return RecordingReporter()


@pytest.fixture
def session(transport, reporter, clock):
    return TimestampSession(
        transport,
        DESTINATION,
        reporter,
        clock=clock,
        identifier=IDENTIFIER,
    )
