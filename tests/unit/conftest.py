"""
Shared fixtures for portal gateway unit tests.

Every test gets its own SQLite in-memory database (StaticPool keeps the one
connection alive across threads, so FastAPI's threadpool sees the same data).
Liveness tests use real loopback sockets - no docker or network required.
"""

import socket

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from portal.services.shared.database import build_engine, create_all_tables
from portal.services.gateway.access_log import AccessLog
from portal.services.gateway.codec import SecretCodec
from portal.services.gateway.registry import EndpointRegistry


@pytest.fixture
def engine():
    eng = build_engine("sqlite://", poolclass=StaticPool)
    create_all_tables(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def codec():
    return SecretCodec(SecretCodec.generate_key())


@pytest.fixture
def access_log(db):
    return AccessLog(db)


@pytest.fixture
def registry(db, codec, access_log):
    return EndpointRegistry(db, codec, default_port=9090, access_log=access_log)


@pytest.fixture
def listening_port():
    """A loopback port with a listener: connects succeed (kernel backlog)."""
    srv = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    srv.bind(("127.0.0.1", 0))
    srv.listen(16)
    yield srv.getsockname()[1]
    srv.close()


@pytest.fixture
def closed_port():
    """A loopback port with nothing listening: connects are refused."""
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port
