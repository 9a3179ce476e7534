# contractorai/conftest.py
import os

# Must be set before contractorai.core.config builds its Settings instance
os.environ.setdefault("ENV", "test")
os.environ.setdefault("SKIP_ENV_VALIDATION", "1")
os.environ.setdefault("ALLOW_USER_ID_HEADER", "true")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-with-at-least-32-bytes")
os.environ.setdefault("REVENUECAT_WEBHOOK_SECRET", "test-webhook-secret")

import pytest

from contractorai.core.database import init_engine, create_all_tables, dispose_engine


@pytest.fixture(scope="function", autouse=True)
def db():
    """
    Fresh in-memory SQLite database for every test.

    The engine uses a single shared connection, so every session opened by
    get_db_session() during the test sees the same data.
    """
    engine = init_engine("sqlite://")
    create_all_tables()
    yield engine
    dispose_engine()
