import pytest
from fastapi.testclient import TestClient

import store
from main import create_app
from tests.helpers import register_and_login


@pytest.fixture
def app(tmp_path):
    return create_app(str(tmp_path / "links.db"))


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def db(client):
    return client.app.state.db


@pytest.fixture
def user_client(client):
    register_and_login(client)
    return client


@pytest.fixture
def link(db):
    return store.insert_link(db, short_code="abc12345", original_url="https://example.com/page")
