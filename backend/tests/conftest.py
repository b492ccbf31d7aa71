"""
Test fixtures for the geoaccess engine.

Everything runs in-process: the identity provider and the profile source are
in-memory fakes, and API tests drive the FastAPI app through
``httpx.ASGITransport`` with a ``SessionRegistry`` wired to those fakes.
"""
import copy

import httpx
import pytest
import pytest_asyncio

from geoaccess.errors import IdentityError
from geoaccess.registry import SessionRegistry
from geoaccess.schemas import (
    Branch,
    Department,
    EmployeeInfo,
    Identity,
    OrgDirectory,
    Province,
    UserProfile,
)
from geoaccess.session import ProfileSessionStore

# ---------------------------------------------------------------------------
# Organization directory used throughout
# ---------------------------------------------------------------------------

PROVINCES = {
    "NMA": Province(id="NMA", name="Nakhon Ratchasima", region="northeast", branch_codes=["NMA-01", "NMA-02"]),
    "KKN": Province(id="KKN", name="Khon Kaen", region="northeast", branch_codes=["KKN-01"]),
    "BKK": Province(id="BKK", name="Bangkok", region="central", is_active=False, branch_codes=["BKK-01"]),
}

BRANCHES = {
    "NMA-01": Branch(code="NMA-01", name="Korat Central", province_id="NMA"),
    "NMA-02": Branch(code="NMA-02", name="Pak Chong", province_id="NMA"),
    "KKN-01": Branch(code="KKN-01", name="Khon Kaen City", province_id="KKN"),
    "BKK-01": Branch(code="BKK-01", name="Silom", province_id="BKK", is_active=False),
}

DEPARTMENTS = {
    "ACC": Department(code="ACC", name="Accounting"),
    "HR": Department(code="HR", name="Human Resources"),
}


def make_directory() -> OrgDirectory:
    return OrgDirectory(
        provinces=dict(PROVINCES),
        branches=dict(BRANCHES),
        departments=dict(DEPARTMENTS),
    )


def make_profile(
    role="user",
    province_id="NMA",
    accessible=None,
    branch="NMA-01",
    department="ACC",
    permissions=None,
    uid="u-1",
    email="somchai@example.com",
    **extra,
) -> UserProfile:
    return UserProfile(
        uid=uid,
        email=email,
        first_name="Somchai",
        last_name="Jaidee",
        role=role,
        permissions=permissions or [],
        province_id=province_id,
        accessible_province_ids=[province_id] if accessible is None else accessible,
        employee_info=EmployeeInfo(branch=branch, department=department),
        is_profile_complete=True,
        **extra,
    )


def profile_document(**kwargs) -> dict:
    """Stored (camelCase) form of ``make_profile(**kwargs)``."""
    return make_profile(**kwargs).to_document()


# ---------------------------------------------------------------------------
# In-memory collaborators
# ---------------------------------------------------------------------------


class FakeIdentityProvider:
    """Accounts keyed by email; ``unavailable`` simulates a provider outage."""

    def __init__(self):
        self.accounts: dict[str, tuple[str, Identity]] = {}
        self.unavailable = False
        self.sign_out_error: Exception | None = None
        self.signed_out: list[str] = []

    def add(self, uid, email, password="secret", display_name=None) -> Identity:
        identity = Identity(uid=uid, email=email, display_name=display_name, email_verified=True)
        self.accounts[email] = (password, identity)
        return identity

    async def sign_in(self, email, password):
        if self.unavailable:
            raise ConnectionError("identity backend unreachable")
        entry = self.accounts.get(email)
        if entry is None or entry[0] != password:
            raise IdentityError(IdentityError.INVALID_CREDENTIALS, "Invalid email or password")
        return entry[1]

    async def sign_out(self, identity):
        if self.sign_out_error is not None:
            raise self.sign_out_error
        self.signed_out.append(identity.uid)


class FakeSubscription:
    def __init__(self, uid, on_next, on_error):
        self.uid = uid
        self.on_next = on_next
        self.on_error = on_error
        self.active = True


class FakeProfileSource:
    """Documents keyed by uid.

    With ``auto_deliver`` the current document is delivered synchronously on
    subscribe; otherwise tests push snapshots with ``push`` / ``deliver``.
    """

    def __init__(self, auto_deliver=True):
        self.documents: dict[str, dict] = {}
        self.subscriptions: list[FakeSubscription] = []
        self.auto_deliver = auto_deliver
        self.write_error: Exception | None = None
        self.fetch_error: Exception | None = None
        self.writes: list[tuple[str, dict]] = []

    def subscribe(self, uid, on_next, on_error):
        sub = FakeSubscription(uid, on_next, on_error)
        self.subscriptions.append(sub)
        if self.auto_deliver:
            on_next(copy.deepcopy(self.documents.get(uid)))

        def _unsubscribe():
            sub.active = False

        return _unsubscribe

    def active(self, uid):
        return [s for s in self.subscriptions if s.uid == uid and s.active]

    def push(self, uid, document):
        """Store *document* and deliver it to live subscribers."""
        if document is None:
            self.documents.pop(uid, None)
        else:
            self.documents[uid] = copy.deepcopy(document)
        for sub in self.active(uid):
            sub.on_next(copy.deepcopy(document))

    def deliver(self, sub, document):
        """Deliver to one subscription even if it was torn down."""
        sub.on_next(copy.deepcopy(document))

    def fail(self, uid, exc):
        for sub in self.active(uid):
            sub.on_error(exc)

    async def fetch(self, uid):
        if self.fetch_error is not None:
            raise self.fetch_error
        return copy.deepcopy(self.documents.get(uid))

    async def update_fields(self, uid, fields):
        if self.write_error is not None:
            raise self.write_error
        self.writes.append((uid, dict(fields)))
        merged = {**self.documents.get(uid, {}), **copy.deepcopy(dict(fields))}
        self.push(uid, merged)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def directory():
    return make_directory()


@pytest.fixture
def identity_provider():
    provider = FakeIdentityProvider()
    provider.add("u-1", "somchai@example.com", display_name="Somchai")
    provider.add("u-2", "malee@example.com", display_name="Malee")
    return provider


@pytest.fixture
def profile_source():
    return FakeProfileSource()


@pytest.fixture
def manual_source():
    """Profile source that only delivers when the test says so."""
    return FakeProfileSource(auto_deliver=False)


@pytest.fixture
def store(identity_provider, profile_source, directory):
    s = ProfileSessionStore(
        identity_provider, profile_source, directory=directory, developer_emails=["dev@example.com"]
    )
    yield s
    s.close()


@pytest.fixture
def manual_store(identity_provider, manual_source, directory):
    s = ProfileSessionStore(identity_provider, manual_source, directory=directory, developer_emails=())
    yield s
    s.close()


@pytest.fixture
def registry(identity_provider, profile_source, directory):
    r = SessionRegistry(
        identity_provider, profile_source, directory=directory, developer_emails=(), settle_seconds=0.05
    )
    yield r
    r.close_all()


@pytest_asyncio.fixture
async def client(registry):
    """HTTP client against the app with the in-memory registry installed."""
    from geoaccess.main import app

    app.state.registry = registry
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def auth_headers(token: str) -> dict:
    """Return auth header dict for a given token."""
    return {"Authorization": f"Bearer {token}"}


async def login(client: httpx.AsyncClient, email="somchai@example.com", password="secret") -> str:
    """Login and return the JWT token."""
    r = await client.post("/api/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, f"Login failed: {r.text}"
    return r.json()["access_token"]
