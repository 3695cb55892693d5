import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("DEFAULT_TIMEZONE", "America/Sao_Paulo")

from datetime import timedelta

import httpx
import pytest
from fastapi.testclient import TestClient
from jose import jwt

from clinvia import config
from clinvia.database import Base, SessionLocal, engine, get_db
from clinvia.main import app
from clinvia.models import (
    Appointment,
    Contact,
    ProductService,
    Professional,
    SchedulingSettings,
    TeamMember,
    User,
)
from clinvia.models_messaging import Conversation, Instance
from clinvia.rate_limiter import webhook_rate_limit
from clinvia.shared import outbound

API_KEY = "test-api-key"
JWT_SECRET = "jwt-test-secret"


class FakeHttp:
    """Records outbound requests and answers from a (method, url) table"""

    def __init__(self):
        self.requests = []
        self.routes = {}

    def add(self, method, url, json=None, status_code=200):
        self.routes[(method.upper(), url)] = (status_code, json if json is not None else {})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url).split("?")[0]
        status_code, body = self.routes.get((request.method, url), (404, {"error": "not mocked"}))
        return httpx.Response(status_code, json=body)

    def sent(self, method, url):
        return [r for r in self.requests if r.method == method and str(r.url).split("?")[0] == url]


@pytest.fixture(autouse=True)
def fake_http(monkeypatch):
    fake = FakeHttp()

    def client(timeout=outbound.DEFAULT_TIMEOUT_SECONDS):
        return httpx.AsyncClient(transport=httpx.MockTransport(fake.handler), timeout=timeout)

    monkeypatch.setattr(outbound, "client", client)
    return fake


@pytest.fixture(autouse=True)
def api_key(monkeypatch):
    monkeypatch.setattr(config, "SCHEDULING_API_KEY", API_KEY)
    return API_KEY


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[webhook_rate_limit] = lambda: None
    # No context manager: the lifespan would try to reach Redis
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def headers(api_key):
    return {"x-api-key": api_key}


@pytest.fixture(autouse=True)
def jwt_secret(monkeypatch):
    monkeypatch.setattr(config, "SUPABASE_JWT_SECRET", JWT_SECRET)


@pytest.fixture
def bearer():
    """Authorization header of a signed-in team member"""

    def make(member):
        token = jwt.encode({"sub": member.auth_user_id}, JWT_SECRET, algorithm="HS256")
        return {"Authorization": f"Bearer {token}"}

    return make


@pytest.fixture
def agent(factory, owner):
    return factory.member(owner, "Ana", full_name="Ana Souza", auth_user_id="auth-ana")


@pytest.fixture
def auth(bearer, agent):
    return bearer(agent)


class Factory:
    """Row builders for tests; every row is committed"""

    def __init__(self, db):
        self.db = db

    def _add(self, row):
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def user(self, **kwargs):
        kwargs.setdefault("email", f"owner{self.db.query(User).count()}@clinic.com")
        return self._add(User(**kwargs))

    def settings(self, user, **kwargs):
        return self._add(SchedulingSettings(user_id=user.id, **kwargs))

    def professional(self, user, name="Dra. Ana", **kwargs):
        return self._add(Professional(user_id=user.id, name=name, **kwargs))

    def service(self, user, name="Limpeza", **kwargs):
        kwargs.setdefault("type", "service")
        return self._add(ProductService(user_id=user.id, name=name, **kwargs))

    def contact(self, user, number="5511999990000@s.whatsapp.net", **kwargs):
        return self._add(Contact(user_id=user.id, number=number, **kwargs))

    def appointment(self, user, start, minutes=60, **kwargs):
        kwargs.setdefault("status", "confirmed")
        kwargs.setdefault("type", "appointment")
        return self._add(
            Appointment(user_id=user.id, start_time=start, end_time=start + timedelta(minutes=minutes), **kwargs)
        )

    def member(self, user, name="Ana", **kwargs):
        kwargs.setdefault("email", f"{name.lower()}@clinic.com")
        return self._add(TeamMember(user_id=user.id, name=name, **kwargs))

    def instance(self, user, instance_name="clinic-main", **kwargs):
        kwargs.setdefault("status", "connected")
        kwargs.setdefault("apikey", "instance-token")
        return self._add(Instance(user_id=user.id, name="Clinic", instance_name=instance_name, **kwargs))

    def conversation(self, instance, contact=None, **kwargs):
        kwargs.setdefault("status", "pending")
        return self._add(
            Conversation(
                user_id=instance.user_id,
                instance_id=instance.id,
                contact_id=contact.id if contact else None,
                **kwargs,
            )
        )


@pytest.fixture
def factory(db):
    return Factory(db)


@pytest.fixture
def owner(factory):
    return factory.user(full_name="Clinic Owner")
