"""Shared fixtures: an in-memory catalog and a deterministic consensus log."""

from typing import Iterator

import pytest

from provenant.anchoring.query import ConsensusQuery, QueryWindow
from provenant.anchoring.registration import ProductRegistrar
from provenant.anchoring.submission import SubmissionClient
from provenant.db.session import build_engine, drop_all, init_db
from provenant.db.store import CatalogStore
from tests.helpers.fake_network import TOPIC_ID, FakeConsensusNetwork


@pytest.fixture()
def engine():
    engine = build_engine("sqlite://")
    init_db(engine)
    yield engine
    drop_all(engine)
    engine.dispose()


@pytest.fixture()
def store(engine) -> CatalogStore:
    return CatalogStore(engine)


@pytest.fixture()
def network() -> FakeConsensusNetwork:
    return FakeConsensusNetwork()


@pytest.fixture()
def submitter(network) -> SubmissionClient:
    return SubmissionClient(network, TOPIC_ID)


@pytest.fixture()
def query(network) -> ConsensusQuery:
    return ConsensusQuery(
        network,
        TOPIC_ID,
        default_window=QueryWindow(timeout=0.3, grace=0.05),
        poll_interval=0.01,
    )


@pytest.fixture()
def registrar(store, submitter) -> Iterator[ProductRegistrar]:
    yield ProductRegistrar(store, submitter=submitter, verification_base_url="https://verify.example")
