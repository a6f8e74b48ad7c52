"""
Integration tests for the minibank API
Tests end-to-end workflows using FastAPI TestClient
"""

import time
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from minibank.api import create_app
from minibank.api.auth import BankingSystem
from minibank.config import MinibankConfig
from minibank.credentials import CredentialHasher
from minibank.errors import StoreError
from minibank.sessions import SessionIssuer
from minibank.storage import InMemoryAccountStore, SQLiteAccountStore


PASSWORD = "password123"
SECRET = "test-secret-key-for-unit-tests-only-0001"
HUGE = 10 ** 20


@pytest.fixture
def system():
    """Banking system on in-memory storage with a cheap hasher"""
    return BankingSystem(
        InMemoryAccountStore(),
        SessionIssuer(SECRET, expiry=timedelta(minutes=15)),
        CredentialHasher(n=1024, r=8, p=1)
    )


@pytest.fixture
def client(system):
    """Create a test client for the API with an injected banking system"""
    config = MinibankConfig(_env_file=None, storage_backend="memory", jwt_secret=SECRET)
    app = create_app(system=system, config=config)
    return TestClient(app)


def open_account(client, first_name="Ada", last_name="Lovelace", password=PASSWORD):
    r = client.post("/account", json={"firstName": first_name, "lastName": last_name, "password": password})
    assert r.status_code == 201
    return r.json()


def login(client, number, password=PASSWORD):
    r = client.post("/login", json={"number": number, "password": password})
    assert r.status_code == 200
    return {"x-jwt-token": r.json()["jwt"]}


class TestHealthEndpoints:
    """Test basic health and root endpoints"""

    def test_health(self, client):
        """Test health endpoint"""
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "healthy"

    def test_root(self, client):
        """Test root endpoint"""
        r = client.get("/")
        assert r.status_code == 200
        assert "endpoints" in r.json()


class TestAccountFlow:
    """End-to-end account management tests"""

    def test_create_account(self, client):
        """Test creating an account"""
        data = open_account(client)
        assert data["firstName"] == "Ada"
        assert data["lastName"] == "Lovelace"
        assert data["balance"] == 0
        assert isinstance(data["id"], int)
        assert 0 <= data["number"] < 1_000_000
        assert "createdAt" in data
        assert "password" not in data
        assert "passwordHash" not in data

    def test_create_account_invalid_body(self, client):
        """Test that malformed bodies give 400 with an error message"""
        r = client.post("/account", json={"firstName": "Ada"})
        assert r.status_code == 400
        assert "error" in r.json()

        r = client.post("/account", content=b"{not json", headers={"content-type": "application/json"})
        assert r.status_code == 400

    def test_create_account_short_password(self, client):
        """Test the minimum password length"""
        r = client.post("/account", json={"firstName": "Ada", "lastName": "Lovelace", "password": "pw"})
        assert r.status_code == 400
        assert "at least" in r.json()["error"]

    def test_list_accounts(self, client):
        """Test listing accounts without authentication"""
        first = open_account(client)
        second = open_account(client, "Alan", "Turing")

        r = client.get("/account")
        assert r.status_code == 200
        listed = r.json()
        assert [a["id"] for a in listed] == [first["id"], second["id"]]
        assert all("password" not in a for a in listed)

    def test_get_account_requires_token(self, client):
        """Test that a missing or invalid token is forbidden"""
        account = open_account(client)

        r = client.get(f"/account/{account['id']}")
        assert r.status_code == 403
        assert r.json() == {"error": "Missing session token"}

        r = client.get(f"/account/{account['id']}", headers={"x-jwt-token": "garbage"})
        assert r.status_code == 403

    def test_get_account(self, client):
        """Test retrieving an account with its owner's token"""
        account = open_account(client)
        headers = login(client, account["number"])

        r = client.get(f"/account/{account['id']}", headers=headers)
        assert r.status_code == 200
        assert r.json() == account

    def test_get_account_bad_id(self, client):
        """Test that a non-numeric id is a 400"""
        account = open_account(client)
        headers = login(client, account["number"])

        r = client.get("/account/abc", headers=headers)
        assert r.status_code == 400
        assert "error" in r.json()

    def test_get_other_account_forbidden(self, client):
        """Test that a token only grants access to its own account"""
        owner = open_account(client)
        other = open_account(client, "Alan", "Turing")
        headers = login(client, owner["number"])

        r = client.get(f"/account/{other['id']}", headers=headers)
        assert r.status_code == 403

    def test_get_missing_account(self, client):
        """Test looking up an id that does not exist"""
        account = open_account(client)
        headers = login(client, account["number"])

        r = client.get("/account/9999", headers=headers)
        assert r.status_code == 404
        assert "not found" in r.json()["error"]

    def test_update_account(self, client):
        """Test a partial update"""
        account = open_account(client)
        headers = login(client, account["number"])

        r = client.put(f"/account/{account['id']}", json={"lastName": "King"}, headers=headers)
        assert r.status_code == 200
        assert r.json() == {"id": account["id"]}

        r = client.get(f"/account/{account['id']}", headers=headers)
        assert r.json()["lastName"] == "King"
        assert r.json()["firstName"] == "Ada"

    def test_update_account_number_conflict(self, client):
        """Test that taking another account's number is a conflict"""
        owner = open_account(client)
        other = open_account(client, "Alan", "Turing")
        headers = login(client, owner["number"])

        r = client.put(f"/account/{owner['id']}", json={"number": other["number"]}, headers=headers)
        assert r.status_code == 409

    def test_delete_account(self, client):
        """Test deleting an account"""
        account = open_account(client)
        headers = login(client, account["number"])

        r = client.delete(f"/account/{account['id']}", headers=headers)
        assert r.status_code == 200
        assert r.json() == {"id": account["id"]}

        assert client.get("/account").json() == []

    def test_update_other_account_forbidden(self, client, system):
        """Test that a token cannot update someone else's account"""
        owner = open_account(client)
        other = open_account(client, "Alan", "Turing")
        headers = login(client, owner["number"])

        r = client.put(f"/account/{other['id']}", json={"lastName": "Hacked", "balance": 10**6}, headers=headers)
        assert r.status_code == 403
        stored = system.account_service.get_account(other["id"])
        assert (stored.last_name, stored.balance) == ("Turing", 0)

    def test_delete_other_account_forbidden(self, client, system):
        """Test that a token cannot delete someone else's account"""
        owner = open_account(client)
        other = open_account(client, "Alan", "Turing")
        headers = login(client, owner["number"])

        r = client.delete(f"/account/{other['id']}", headers=headers)
        assert r.status_code == 403
        assert system.account_service.get_account(other["id"]).number == other["number"]

    def test_delete_missing_account(self, client):
        """Test deleting an id that does not exist"""
        account = open_account(client)
        headers = login(client, account["number"])

        r = client.delete("/account/9999", headers=headers)
        assert r.status_code == 404
        assert "not found" in r.json()["error"]

    def test_update_and_delete_require_token(self, client):
        """Test that writes without a session token are forbidden"""
        account = open_account(client)

        r = client.put(f"/account/{account['id']}", json={"lastName": "King"})
        assert r.status_code == 403
        assert r.json() == {"error": "Missing session token"}

        r = client.delete(f"/account/{account['id']}")
        assert r.status_code == 403

        assert client.get("/account").json() == [account]


class TestLogin:
    """Session token issuance"""

    def test_login(self, client, system):
        """Test that login returns a token for the account number"""
        account = open_account(client)
        headers = login(client, account["number"])
        assert system.sessions.validate_token(headers["x-jwt-token"]) == account["number"]

    def test_login_wrong_password(self, client):
        """Test that a wrong password is a 401"""
        account = open_account(client)
        r = client.post("/login", json={"number": account["number"], "password": "wrong-password"})
        assert r.status_code == 401
        assert r.json() == {"error": "Invalid account number or password"}

    def test_login_unknown_number(self, client):
        """Test that unknown numbers are also a 401"""
        r = client.post("/login", json={"number": 123, "password": PASSWORD})
        assert r.status_code == 401

    def test_expired_token_forbidden(self, client, system):
        """Test that expired tokens are refused"""
        account = open_account(client)
        expired = SessionIssuer(SECRET, expiry=timedelta(seconds=-60))
        stored = system.account_service.get_account(account["id"])
        headers = {"x-jwt-token": expired.issue_token(stored)}

        r = client.get(f"/account/{account['id']}", headers=headers)
        assert r.status_code == 403
        assert r.json() == {"error": "Token expired"}


class TestTransferFlow:
    """End-to-end transfer tests"""

    def fund(self, system, account, balance):
        system.account_service.update_account(account["id"], balance=balance)

    def test_transfer(self, client, system):
        """Test the documented scenario: 100/50, move 30, then fail on 1000"""
        first = open_account(client)
        second = open_account(client, "Alan", "Turing")
        self.fund(system, first, 100)
        self.fund(system, second, 50)

        body = {"fromAccount": first["number"], "toAccount": second["number"], "amount": 30}
        r = client.post("/transfer", json=body)
        assert r.status_code == 200
        assert r.json() == body

        r = client.post("/transfer", json={**body, "amount": 1000})
        assert r.status_code == 400
        assert "Insufficient funds" in r.json()["error"]

        by_number = {a["number"]: a["balance"] for a in client.get("/account").json()}
        assert (by_number[first["number"]], by_number[second["number"]]) == (70, 80)

    def test_transfer_to_missing_account(self, client, system):
        """Test that a missing destination leaves the source untouched"""
        first = open_account(client)
        self.fund(system, first, 100)
        missing = (first["number"] + 1) % 1_000_000

        r = client.post("/transfer", json={"fromAccount": first["number"], "toAccount": missing, "amount": 10})
        assert r.status_code == 404
        assert system.account_service.get_account(first["id"]).balance == 100

    def test_transfer_validation(self, client, system):
        """Test rejected amounts and self-transfers"""
        first = open_account(client)
        self.fund(system, first, 100)

        for body in [
            {"fromAccount": first["number"], "toAccount": 1, "amount": 0},
            {"fromAccount": first["number"], "toAccount": 1, "amount": -5},
            {"fromAccount": first["number"], "toAccount": 1},
            {"fromAccount": first["number"], "toAccount": first["number"], "amount": 10},
        ]:
            r = client.post("/transfer", json=body)
            assert r.status_code == 400
            assert "error" in r.json()

        assert system.account_service.get_account(first["id"]).balance == 100


class TestStoreFailures:
    """Storage failures must not leak details"""

    def test_store_error_is_generic(self, client, system, monkeypatch):
        """Test that StoreError becomes a 503 with a generic message"""
        def broken():
            raise StoreError("connection refused to db:5432")

        monkeypatch.setattr(system.store, "list_accounts", broken)
        r = client.get("/account")
        assert r.status_code == 503
        assert r.json() == {"error": "Storage unavailable"}


class SlowStore(InMemoryAccountStore):
    """In-memory store whose balance writes take longer than a request may"""

    def _add_to_balance(self, number, delta):
        super()._add_to_balance(number, delta)
        time.sleep(0.3)


class TestRequestDeadline:
    """Requests that overrun their deadline are rolled back"""

    @pytest.fixture
    def slow_system(self):
        return BankingSystem(
            SlowStore(),
            SessionIssuer(SECRET, expiry=timedelta(minutes=15)),
            CredentialHasher(n=1024, r=8, p=1)
        )

    @pytest.fixture
    def slow_client(self, slow_system):
        config = MinibankConfig(
            _env_file=None, storage_backend="memory", jwt_secret=SECRET,
            request_timeout_seconds=0.2
        )
        return TestClient(create_app(system=slow_system, config=config))

    def test_timed_out_transfer_is_rolled_back(self, slow_client, slow_system):
        """Test that a 504 transfer leaves both balances as they were"""
        first = open_account(slow_client)
        second = open_account(slow_client, "Alan", "Turing")
        slow_system.account_service.update_account(first["id"], balance=100)
        slow_system.account_service.update_account(second["id"], balance=50)

        r = slow_client.post("/transfer", json={
            "fromAccount": first["number"], "toAccount": second["number"], "amount": 30
        })
        assert r.status_code == 504
        assert r.json() == {"error": "Request timed out"}

        by_number = {a["number"]: a["balance"] for a in slow_client.get("/account").json()}
        assert (by_number[first["number"]], by_number[second["number"]]) == (100, 50)

    def test_fast_requests_are_unaffected(self, slow_client):
        """Test that requests finishing in time succeed under the same deadline"""
        account = open_account(slow_client)
        headers = login(slow_client, account["number"])

        r = slow_client.put(f"/account/{account['id']}", json={"lastName": "King"}, headers=headers)
        assert r.status_code == 200


class TestIntegerBounds:
    """Integers beyond 64 bits are client errors on a SQL-backed store"""

    @pytest.fixture
    def sqlite_client(self, tmp_path):
        store = SQLiteAccountStore(tmp_path / "bank.db")
        store.initialize()
        system = BankingSystem(
            store,
            SessionIssuer(SECRET, expiry=timedelta(minutes=15)),
            CredentialHasher(n=1024, r=8, p=1)
        )
        config = MinibankConfig(_env_file=None, storage_backend="sqlite", jwt_secret=SECRET)
        yield TestClient(create_app(system=system, config=config))
        store.close()

    def test_login_number(self, sqlite_client):
        """Test an oversized login number"""
        r = sqlite_client.post("/login", json={"number": HUGE, "password": PASSWORD})
        assert r.status_code == 400
        assert "error" in r.json()

    def test_transfer_accounts(self, sqlite_client):
        """Test oversized source and destination numbers"""
        account = open_account(sqlite_client)
        for body in [
            {"fromAccount": HUGE, "toAccount": account["number"], "amount": 1},
            {"fromAccount": account["number"], "toAccount": HUGE, "amount": 1},
            {"fromAccount": account["number"], "toAccount": -HUGE, "amount": 1},
            {"fromAccount": account["number"], "toAccount": 1, "amount": HUGE},
        ]:
            r = sqlite_client.post("/transfer", json=body)
            assert r.status_code == 400

    def test_update_fields(self, sqlite_client):
        """Test oversized number and balance in an update"""
        account = open_account(sqlite_client)
        headers = login(sqlite_client, account["number"])

        for body in [{"number": HUGE}, {"balance": HUGE}, {"balance": -HUGE}]:
            r = sqlite_client.put(f"/account/{account['id']}", json=body, headers=headers)
            assert r.status_code == 400

        r = sqlite_client.get(f"/account/{account['id']}", headers=headers)
        assert (r.json()["number"], r.json()["balance"]) == (account["number"], 0)

    def test_path_id(self, sqlite_client):
        """Test an oversized account id in the path"""
        account = open_account(sqlite_client)
        headers = login(sqlite_client, account["number"])

        for method in ("get", "put", "delete"):
            kwargs = {"json": {"lastName": "King"}} if method == "put" else {}
            r = getattr(sqlite_client, method)(f"/account/{HUGE}", headers=headers, **kwargs)
            assert r.status_code == 400
