"""Shared fixtures: an in-memory relational store and an in-memory graph."""

import pytest

from cograph.db.database import DatabaseManager
from cograph.db.store import RelationalStore
from tests.fakes import FakeGraphService


@pytest.fixture
def db():
    manager = DatabaseManager("sqlite://")
    manager.init_schema()
    yield manager
    manager.dispose()


@pytest.fixture
def store(db):
    return RelationalStore(db)


@pytest.fixture
def repository(store):
    return store.create_repository(
        name="webapp",
        repository_url="https://github.com/acme/webapp.git",
        full_name="acme/webapp",
        default_branch="main",
    )


@pytest.fixture
def fake_graph():
    return FakeGraphService()
