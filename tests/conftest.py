# tests/conftest.py
from __future__ import annotations

import base64
import os
from collections.abc import Callable, Generator, Iterator, Mapping
from pathlib import Path
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from nacl.public import PrivateKey
from nacl.signing import SigningKey
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["RETENTION_SWEEP_ENABLED"] = "false"

from sealpost.db.session import Base
from sealpost.db.session import get_db as app_get_session
from sealpost.main import app as fastapi_app
from sealpost.models import Device
from sealpost.services.device_registry import DeviceRegistry
from sealpost.services.envelopes import EnvelopeStore
from sealpost.services.key_bundles import KeyBundleStore
from sealpost.services.presence import PresenceHub

TEST_DB_URL = "sqlite://"


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode()


def _clear_tables(engine: Engine) -> None:
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        # Services commit, so each test starts from empty tables instead of a rolled-back transaction.
        _clear_tables(engine)


@pytest.fixture()
def file_session_factory(tmp_path: Path) -> Iterator[sessionmaker[Session]]:
    """Sessions on a file-backed database, one connection per thread."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'relay.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    finally:
        engine.dispose()


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_session_dependency(app: FastAPI, db_session: Session) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


class RecordingChannel:
    """In-memory presence channel that records offered frames."""

    def __init__(self, writable: bool = True) -> None:
        self.frames: list[dict[str, Any]] = []
        self._writable = writable
        self.closed = False

    @property
    def writable(self) -> bool:
        return self._writable and not self.closed

    def offer(self, frame: Mapping[str, Any]) -> bool:
        if not self.writable:
            return False
        self.frames.append(dict(frame))
        return True

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def presence() -> PresenceHub:
    return PresenceHub()


@pytest.fixture()
def registry(db_session: Session) -> DeviceRegistry:
    return DeviceRegistry(db_session)


@pytest.fixture()
def bundles(db_session: Session, registry: DeviceRegistry) -> KeyBundleStore:
    return KeyBundleStore(db_session, registry)


@pytest.fixture()
def envelopes(db_session: Session, registry: DeviceRegistry, presence: PresenceHub) -> EnvelopeStore:
    return EnvelopeStore(db_session, presence=presence, devices=registry)


def generate_device_key() -> bytes:
    """Return a fresh 32-byte Ed25519 public key."""
    return SigningKey.generate().verify_key.encode()


def generate_bundle(one_time_keys: int = 0) -> dict[str, Any]:
    """Build realistic key bundle material the way a client would."""
    identity = SigningKey.generate()
    signed_pre_key = PrivateKey.generate().public_key.encode()
    return {
        "identity_key": identity.verify_key.encode(),
        "signed_pre_key": signed_pre_key,
        "signature": identity.sign(signed_pre_key).signature,
        "one_time_pre_keys": [PrivateKey.generate().public_key.encode() for _ in range(one_time_keys)],
    }


@pytest.fixture()
def make_device(registry: DeviceRegistry) -> Callable[..., Device]:
    def _make(user_id: str = "alice", public_key: bytes | None = None) -> Device:
        return registry.register(user_id, public_key or generate_device_key())

    return _make


@pytest.fixture()
def alice(make_device: Callable[..., Device]) -> Device:
    return make_device("alice")


@pytest.fixture()
def bob(make_device: Callable[..., Device]) -> Device:
    return make_device("bob")
