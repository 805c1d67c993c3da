# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and shared fixtures for LinkAlchemy tests.
"""

from __future__ import annotations

from typing import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from linkalchemy import LinkSession, get_metadata, parse_schema

from .models import ALL_MODELS


@pytest.fixture(scope="function")
def engine() -> Generator[Engine, None, None]:
    """Fresh in-memory SQLite database with every test table created."""
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    for model in ALL_MODELS:
        parse_schema(model)
    get_metadata().create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture(scope="function")
def session(engine: Engine) -> Generator[LinkSession, None, None]:
    """Create a LinkSession for testing."""
    session = LinkSession(engine=engine)
    try:
        yield session
    finally:
        session.close()
