import pytest
from flask_jwt_extended import create_access_token

from app import create_app
from extensions import db
from account.models import Profile
from auth.models import LocalAuth, User
from scanner.errors import PersistenceError
from scanner.randomness import ScanRandom
from scanner.scheduler import TaskHandle
from scanner.simulator import init_scanner
from scanner.store import SqlRecordStore

PASSWORD = "Sup3r-Secret!"


class ManualScheduler:
    """Collects periodic tasks and only runs them when a test says so."""

    def __init__(self):
        self.tasks = []

    def every(self, interval_s, fn, *, name="task"):
        handle = TaskHandle(name)
        self.tasks.append((handle, fn))
        return handle

    @property
    def live(self):
        return [h for h, _ in self.tasks if not h.cancelled]

    def step(self):
        for handle, fn in list(self.tasks):
            if handle.cancelled:
                continue
            if not fn():
                handle.cancel()

    def run_until_idle(self, limit=100000):
        for _ in range(limit):
            if not self.live:
                return
            self.step()
        raise AssertionError("scheduler never went idle")


class ScriptedRandom(ScanRandom):
    def __init__(self, files=75, threats=1, size=4096):
        super().__init__(seed=1234)
        self.files = files
        self.threats = threats
        self.size = size

    def files_per_tick(self, low, high):
        return self.files

    def threat_count(self, maximum):
        return min(self.threats, maximum)

    def file_size(self, upper=1024000):
        return self.size


class FlakyStore(SqlRecordStore):
    """SqlRecordStore that fails selected (operation, table) pairs."""

    def __init__(self, *fail):
        super().__init__()
        self.fail = set(fail)
        self.calls = []

    def _check(self, op, table):
        self.calls.append((op, table))
        if (op, table) in self.fail:
            raise PersistenceError(f"Could not {op} {table}", details={"table": table, "reason": "injected"})

    def create(self, table, record):
        self._check("create", table)
        return super().create(table, record)

    def create_many(self, table, records):
        self._check("create_many", table)
        return super().create_many(table, records)

    def update(self, table, match, partial):
        self._check("update", table)
        return super().update(table, match, partial)


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def rng():
    return ScriptedRandom()


@pytest.fixture
def app(scheduler, rng):
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test",
        "JWT_SECRET_KEY": "test-jwt-secret-key-that-is-long-enough",
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "RATELIMIT_ENABLED": False,
        "BCRYPT_LOG_ROUNDS": 4,
    })
    with app.app_context():
        init_scanner(app, scheduler=scheduler, rng_factory=lambda: rng)
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make(email="alice@example.com", tier="free", subscription_end=None):
        user = User(email=email)
        la = LocalAuth(user=user)
        la.set_password(PASSWORD, email)
        user.profile = Profile(email=email, subscription_tier=tier, subscription_end=subscription_end)
        db.session.add(user)
        db.session.commit()
        return user
    return _make


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def auth_headers(app):
    def _headers(user):
        token = create_access_token(identity=str(user.id))
        return {"Authorization": f"Bearer {token}"}
    return _headers
