"""
Shared fixtures: account stores for every available engine
"""

import os

import pytest

from minibank.models import Account
from minibank.storage import InMemoryAccountStore, PostgreSQLAccountStore, SQLiteAccountStore


POSTGRES_DSN = os.getenv("MINIBANK_TEST_POSTGRES_DSN")


def _make_account(number: int, balance: int = 0, first_name: str = "Test", last_name: str = "Holder") -> Account:
    return Account(
        first_name=first_name,
        last_name=last_name,
        password_hash=b"scrypt$1024$8$1$00$00",
        number=number,
        balance=balance,
    )


@pytest.fixture(params=["memory", "sqlite", "postgresql"])
def store(request, tmp_path):
    """Initialized, empty store for each engine"""
    if request.param == "memory":
        store = InMemoryAccountStore()
    elif request.param == "sqlite":
        store = SQLiteAccountStore(tmp_path / "accounts.db")
    else:
        if not POSTGRES_DSN:
            pytest.skip("MINIBANK_TEST_POSTGRES_DSN not set")
        store = PostgreSQLAccountStore(POSTGRES_DSN)
        store.initialize()
        with store._cursor() as cursor:
            cursor.execute("TRUNCATE account RESTART IDENTITY")
    store.initialize()
    yield store
    store.close()


@pytest.fixture
def make_account():
    """Factory for unsaved accounts with a fixed dummy hash"""
    return _make_account
