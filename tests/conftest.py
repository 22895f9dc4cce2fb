import io
import os
import tempfile

# Antes de importar la app: base en memoria y almacenamiento temporal
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("STORAGE_ROOT", tempfile.mkdtemp(prefix="signseal-tests-"))
os.environ.setdefault("EXPIRY_JOB_ENABLED", "false")

import pytest
from reportlab.pdfgen import canvas
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base
import create_tables  # noqa: F401  registra todos los modelos
from modules.auth.services import account_service
from modules.auth.services.auth_service import AuthService
from modules.auth.services.throttle import CooldownTracker, InMemoryThrottleStore, LoginThrottleGuard
from modules.auth.services.login_service import LoginService
from modules.documents.models.user import User, UserRole
from modules.documents.services.geolocation import GeolocationService
from modules.documents.services.signature_service import SignatureService
from modules.documents.services.storage import LocalStorage
from modules.notifications.services.notification_service import NotificationService


class FakeNotifier(NotificationService):
    """Registra los correos en memoria en lugar de llamar a la API."""

    def __init__(self):
        super().__init__()
        self.sent = []

    def send(self, template) -> bool:
        self.sent.append(template)
        return True

    def kinds(self, to=None):
        return [t.kind for t in self.sent if to is None or t.to == to]


class FakeGeolocation(GeolocationService):
    LOCATION = {"ip": "203.0.113.7", "city": "Santiago", "region": "Santiago",
                "country": "Chile", "latitude": -33.45, "longitude": -70.66}

    def __init__(self):
        super().__init__("http://geo.invalid/{ip}", "http://geo.invalid/{ip}")

    def lookup(self, ip):
        return dict(self.LOCATION) if ip else None


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def session(session_factory):
    db = session_factory()
    yield db
    db.close()


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(str(tmp_path / "storage"))


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def geolocation():
    return FakeGeolocation()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def guard(clock):
    return LoginThrottleGuard(InMemoryThrottleStore(), limit=5, cooldown_seconds=60, clock=clock)


@pytest.fixture
def login_service(guard, notifier):
    return LoginService(guard, notifier, block_threshold=10)


@pytest.fixture
def signature_service(notifier, geolocation):
    return SignatureService(notifier, geolocation)


@pytest.fixture(autouse=True)
def fresh_resend_cooldown(monkeypatch):
    monkeypatch.setattr(account_service, "resend_cooldown", CooldownTracker(60))


def make_user(session, email="owner@example.com", password="secret123", role=UserRole.USER,
              verified=True, full_name=None):
    user = User(
        email=email,
        password_hash=AuthService.get_password_hash(password),
        full_name=full_name or email.split("@")[0].title(),
        role=role,
        is_verified=verified,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def make_pdf_bytes(text="PDF para test"):
    buf = io.BytesIO()
    c = canvas.Canvas(buf)
    c.drawString(50, 750, text)
    c.save()
    buf.seek(0)
    return buf.read()


@pytest.fixture
def owner(session):
    return make_user(session, "owner@example.com", full_name="Olivia Owner")


@pytest.fixture
def admin(session):
    return make_user(session, "admin@example.com", role=UserRole.ADMIN, full_name="Ada Admin")


@pytest.fixture
def pdf_bytes():
    return make_pdf_bytes()
