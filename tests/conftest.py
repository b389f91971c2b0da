import os

import pytest
from fastapi.testclient import TestClient

from upload_gateway.config import Settings
from upload_gateway.main import create_app

TOKEN = "secret"
AUTH = {"Authorization": f"Bearer {TOKEN}"}


def generate_random_content(size_bytes):
    """Generate random binary content of specified size."""
    return os.urandom(size_bytes)


@pytest.fixture
def upload_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def settings(upload_dir):
    return Settings(upload_dir=upload_dir, upload_token=TOKEN)


@pytest.fixture
def client(settings):
    """Test client with the lifespan running (upload dir created, sweeper started)."""
    with TestClient(create_app(settings)) as test_client:
        yield test_client
