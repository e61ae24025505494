"""
Shared fixtures: in-memory SQLite database and fake vendor HTTP transports
"""

import os

# Settings are read at import time, so the environment comes first
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENCRYPTION_KEY"] = "test-server-secret-do-not-use"
os.environ["SCRYPT_N"] = "1024"
os.environ["APP_ENV"] = "test"

import pytest

from inteligencia.services import CredentialStore
from inteligencia.utils.database import close_db, drop_db, get_db_context, init_db
from tests.fakes import FakeVendors

TEST_KEYS = {
    "openai": "sk-test-openai-0123456789",
    "anthropic": "sk-ant-test-0123456789",
    "google": "AIzaTest0123456789",
    "perplexity": "pplx-test-0123456789",
}

@pytest.fixture
async def database():
    await init_db()
    yield
    await drop_db()
    await close_db()

@pytest.fixture
async def db(database):
    async with get_db_context() as session:
        yield session

@pytest.fixture
def configure_provider(db):
    async def configure(provider, **kwargs):
        kwargs.setdefault("api_key", TEST_KEYS[provider])
        credential = await CredentialStore(db).configure(provider, **kwargs)
        return credential
    return configure


@pytest.fixture
def vendors():
    return FakeVendors()
