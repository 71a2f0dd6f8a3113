import pytest

from graphbatch.errors import LoggingErrorSink
from graphbatch.transport import HttpxBatchTransport
from tests.mocks.graph import FakeClock, FakeGraphAPI, make_graph_transport


@pytest.fixture(autouse=True)
def test_unset_env(monkeypatch):
    for name in (
        "GRAPHBATCH_TOKEN",
        "GRAPHBATCH_BATCH_SIZE",
        "GRAPHBATCH_TIMEOUT_SECONDS",
        "GRAPHBATCH_OUTPUT_MODE",
        "GRAPHBATCH_PAGING",
        "GRAPHBATCH_BASE_URL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def graph_api(clock: FakeClock) -> FakeGraphAPI:
    return FakeGraphAPI(clock=clock)


@pytest.fixture
def transport(graph_api: FakeGraphAPI) -> HttpxBatchTransport:
    return make_graph_transport(graph_api)


@pytest.fixture
def sink() -> LoggingErrorSink:
    return LoggingErrorSink()
