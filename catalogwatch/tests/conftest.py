"""
Shared fixtures for the CatalogWatch test suite.

Provides database fixtures that can be used by all tests, shop factories,
a fixed clock and a FastAPI test client bound to the per-test session.

Shared config fixtures:
- temp_config_dir: scratch directory for plans.yml variants
- make_yaml_config: writes a dict as YAML into temp_config_dir
"""

import os
import tempfile
import pytest
import yaml
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Set test environment
os.environ.setdefault("ENV", "test")


@pytest.fixture(scope="session")
def db_engine():
    """SQLite in-memory engine shared by the whole test session."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Import and create all tables
    from catalogwatch.db_base import Base
    from catalogwatch import models  # noqa: F401

    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """
    Session bound to an outer transaction that is rolled back after each test.
    """
    connection = db_engine.connect()
    transaction = connection.begin()

    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=connection)
    session = SessionLocal()

    yield session

    session.close()
    if transaction.is_active:
        transaction.rollback()
    connection.close()


# =============================================================================
# Markers
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "security: webhook signature and cron secret checks")


# =============================================================================
# Domain fixtures
# =============================================================================

@pytest.fixture
def now() -> datetime:
    """Fixed clock: mid-month, mid-day UTC."""
    return datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_shop(db_session):
    """
    Factory fixture that inserts a Shop.

    Usage:
        shop = make_shop("mystore.myshopify.com", plan="pro", ai_credits_used=3)
    """
    from catalogwatch.models.shop import Shop

    def _make(shop_domain: str = "test-store.myshopify.com", **fields) -> Shop:
        shop = Shop(shop_domain=shop_domain, **fields)
        db_session.add(shop)
        db_session.commit()
        db_session.refresh(shop)
        return shop

    return _make


@pytest.fixture
def pro_shop(make_shop):
    return make_shop("pro-store.myshopify.com", plan="pro")


@pytest.fixture
def free_shop(make_shop):
    return make_shop("free-store.myshopify.com", plan="free")


@pytest.fixture
def plan_limits():
    """Plan table with 20 trial AI credits on pro."""
    from catalogwatch.config.plan_limits import PlanLimits

    return PlanLimits.from_dict({
        "default_plan": "free",
        "plans": {
            "pro": {"trial_ai_credits": 20},
        },
    })


@pytest.fixture
def client(db_session):
    """
    FastAPI test client whose database dependency yields the test session.

    Scheduled report builds share that session instead of opening their own.
    """
    from fastapi.testclient import TestClient

    from catalogwatch.database.session import get_db_session, get_report_session_factory
    from catalogwatch.main import app

    def _override():
        yield db_session

    app.dependency_overrides[get_db_session] = _override
    app.dependency_overrides[get_report_session_factory] = lambda: None
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


# =============================================================================
# Shared Config Fixtures
# =============================================================================

@pytest.fixture
def temp_config_dir():
    """Scratch directory removed after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def make_yaml_config(temp_config_dir):
    """
    Write a plans.yml style file and return its path.

    Usage:
        config_path = make_yaml_config("plans.yml", {"plans": {...}})
    """
    def _make(filename: str, config: dict) -> Path:
        config_path = temp_config_dir / filename
        with open(config_path, "w") as f:
            yaml.dump(config, f)
        return config_path
    return _make
