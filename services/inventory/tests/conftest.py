# noqa: D104
"""Shared fixtures for inventory service tests."""

from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from common.db.models import Asset, Base, MediaStatus, MediaType


@pytest.fixture
def session_factory():
    """Session factory bound to a fresh in-memory database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    yield factory
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def make_video(session_factory):
    """Insert a video asset and return it detached."""

    def _make(**overrides) -> Asset:
        values = {
            "user_id": "user-1",
            "media_type": MediaType.video,
            "name": "Walkthrough",
            "processing_status": MediaStatus.preparing,
        }
        values.update(overrides)
        session = session_factory()
        try:
            asset = Asset(**values)
            session.add(asset)
            session.commit()
            session.refresh(asset)
            return asset
        finally:
            session.close()

    return _make


@pytest.fixture
def load_asset(session_factory):
    def _load(asset_id: str) -> Asset:
        session = session_factory()
        try:
            return session.get(Asset, asset_id)
        finally:
            session.close()

    return _load
