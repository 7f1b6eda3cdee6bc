"""
Pytest configuration and fixtures for fixturer tests.

Tests run against a throwaway SQLite database file under ``tmp_path`` so no
database server is needed.
"""
import pytest
from sqlalchemy import create_engine

from fixturer.core.config import Settings


SCHEMA_SQL = """
CREATE TABLE users (
    id INTEGER PRIMARY KEY,
    name VARCHAR(255) NOT NULL,
    note VARCHAR(255) DEFAULT 'none'
);

CREATE TABLE posts (
    id INTEGER PRIMARY KEY,
    user_id INTEGER NOT NULL REFERENCES users (id),
    title VARCHAR(255)
);
"""


@pytest.fixture
def fixtures_dir(tmp_path):
    directory = tmp_path / "fixtures"
    directory.mkdir()
    return directory


@pytest.fixture
def schema_file(tmp_path):
    path = tmp_path / "schema.sql"
    path.write_text(SCHEMA_SQL, encoding="utf-8")
    return path


@pytest.fixture
def test_settings(tmp_path, fixtures_dir, schema_file):
    """Settings pointing at a per-test SQLite database and fixture directory."""
    return Settings(
        database_url="sqlite:///",
        database_name=str(tmp_path / "db" / "fixturer_test.db"),
        database_params="",
        schema_path=str(schema_file),
        fixtures_path=str(fixtures_dir),
        csv_dump_root=str(tmp_path / "dumps"),
        recreate_database=True,
        strict_fixtures=False,
        parallelism=4,
    )


@pytest.fixture
def strict_settings(test_settings):
    return test_settings.model_copy(update={"strict_fixtures": True})


@pytest.fixture
def test_engine(test_settings):
    """Independent engine for inspecting the database a test prepared."""
    engine = create_engine(f"sqlite:///{test_settings.database_name}")
    yield engine
    engine.dispose()
