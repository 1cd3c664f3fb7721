"""
Core pytest configuration and fixtures for DealScout testing.

This module provides shared test fixtures, configuration, and utilities
that support the pillar-based testing architecture.
"""

import tempfile
from pathlib import Path
from typing import List

import pytest
from dealscout.backends import Echo
from dealscout.config import Settings
from dealscout.memory import InteractionMemory
from dealscout.models import (
    SYSTEM_ROLE,
    USER_ROLE,
    Candidate,
    ChatMessage,
    EntityType,
    FeatureSnapshot,
    Persona,
)
from dealscout.preferences import PreferenceEngine
from dealscout.session import InferenceSession
from dealscout.store import InMemory

# ===== TEST DATA FIXTURES =====


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(backend="echo", model="echo", _env_file=None)


@pytest.fixture
def sample_messages() -> List[ChatMessage]:
    """Sample conversation for completion tests."""
    return [
        ChatMessage(role=SYSTEM_ROLE, content="You are an analyst."),
        ChatMessage(role=USER_ROLE, content="Is this founder worth a meeting?"),
    ]


@pytest.fixture
def founder() -> Candidate:
    """A strong early-stage founder."""
    return Candidate(
        id="per_001",
        name="Ada Founder",
        title="CEO",
        company="Stealth AI",
        company_id="com_001",
        location="London",
        features=FeatureSnapshot(
            industry="AI",
            seniority="Executive",
            region="Europe",
            tags=["serial_founder", "prior_exit", "yc_alumni"],
        ),
    )


@pytest.fixture
def weak_candidate() -> Candidate:
    return Candidate(
        id="per_002",
        name="Junior Dev",
        title="Engineer",
        features=FeatureSnapshot(
            industry="Consulting",
            seniority="Entry",
            region="Europe",
            tags=["no_experience", "junior_level"],
        ),
    )


@pytest.fixture
def company() -> Candidate:
    return Candidate(
        id="com_042",
        name="Acme Payments",
        entity_type=EntityType.COMPANY,
        features=FeatureSnapshot(industry="Fintech", tags=["market_leader", "profitable"]),
    )


@pytest.fixture
def tiny_persona() -> Persona:
    """Minimal persona matching the documented scoring scenarios."""
    return Persona(
        id="tiny",
        name="Tiny",
        positive_tags=["serial_founder", "prior_exit", "yc_alumni", "product_leader"],
        red_flag_tags=["no_experience", "junior_level"],
        weights={
            "serial_founder": 0.95,
            "prior_exit": 0.90,
            "yc_alumni": 0.85,
            "product_leader": 0.55,
            "no_experience": -0.80,
            "junior_level": -0.60,
        },
    )


# ===== DIRECTORY FIXTURES =====


@pytest.fixture
def temp_dir():
    """Temporary directory for file-based tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


# ===== PILLAR FIXTURES =====


@pytest.fixture
def echo_backend() -> Echo:
    """Echo backend whose model is already on disk."""
    return Echo(downloaded=True)


@pytest.fixture
def session(echo_backend, settings):
    session = InferenceSession(echo_backend, settings)
    yield session
    session.destroy()


@pytest.fixture
def store() -> InMemory:
    return InMemory()


@pytest.fixture
def engine(store, settings) -> PreferenceEngine:
    """Engine seeded with the built-in personas."""
    return PreferenceEngine(store=store, settings=settings)


@pytest.fixture
def memory(store) -> InteractionMemory:
    return InteractionMemory(store=store, capacity=100, conversation_capacity=20)


@pytest.fixture
def all_store_implementations(temp_dir):
    """All store implementations for contract testing."""
    from dealscout import store

    return [
        ("InMemory", store.InMemory()),
        ("SQLite", store.SQLite(str(temp_dir / "test.db"))),
    ]


# ===== APP FIXTURES =====


@pytest.fixture
def test_app(settings, store):
    """
    Provides a DealScout instance with simple, predictable pillars.

    Ideal for integration tests that need the whole stack without a real model.
    """
    from dealscout import DealScout

    app = DealScout(backend=Echo(downloaded=True), store=store, settings=settings)
    yield app
    app.close()


# ===== CONFIGURATION =====


def pytest_configure(config):
    """Pytest configuration."""
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "slow: marks tests as slow-running")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on location."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
