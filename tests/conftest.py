"""Pytest options and shared fixtures."""

from __future__ import annotations

from typing import List

import pytest

from fakes import FakeMirror, FakeSut, make_config, serve
from ledger_tck.config import TckConfig
from ledger_tck.context import SuiteContext


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run tests/live against the SUT, consensus and mirror endpoints from the environment",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "live: needs a running SUT, consensus node and mirror node")


def pytest_collection_modifyitems(config: pytest.Config, items: List[pytest.Item]) -> None:
    if config.getoption("--live"):
        return
    skip_live = pytest.mark.skip(reason="live suite runs only with --live")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


@pytest.fixture
async def fake_sut():
    sut = FakeSut()
    server = await serve(sut.handle, "POST")
    sut.url = str(server.make_url("/"))
    yield sut
    await server.close()


@pytest.fixture
async def fake_consensus():
    """Reference SDK server answering the consensus queries."""
    reader = FakeSut()
    server = await serve(reader.handle, "POST")
    reader.url = str(server.make_url("/"))
    yield reader
    await server.close()


@pytest.fixture
async def fake_mirror():
    mirror = FakeMirror()
    server = await serve(mirror.handle, "GET")
    mirror.url = str(server.make_url("/")).rstrip("/")
    yield mirror
    await server.close()


@pytest.fixture
def config(fake_sut: FakeSut, fake_consensus: FakeSut, fake_mirror: FakeMirror) -> TckConfig:
    return make_config(fake_sut.url, fake_consensus.url, fake_mirror.url)


@pytest.fixture
async def ctx(config: TckConfig):
    context = SuiteContext(config)
    await context.connect()
    yield context
    await context.close()
