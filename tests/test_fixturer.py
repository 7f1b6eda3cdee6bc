"""
End-to-end tests for Fixturer against a SQLite database file.

These exercise the full recreate -> schema -> import pipeline, repeated
imports through the parse cache, strict/lenient row handling and rollback.
"""
from unittest import mock

import pytest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from fixturer import ConfigError, Fixturer, ImportCache
from tests.utils.fixture_files import POSTS_FIXTURE, USERS_FIXTURE, write_fixture


def _rows(engine, sql):
    with engine.connect() as conn:
        return [tuple(row) for row in conn.execute(text(sql))]


@pytest.fixture
def prepared(test_settings, fixtures_dir):
    """Fixturer whose database was recreated with schema and users/posts fixtures."""
    write_fixture(fixtures_dir, "users.yml", USERS_FIXTURE)
    write_fixture(fixtures_dir, "posts.yml", POSTS_FIXTURE)
    fixturer = Fixturer(test_settings)
    summary = fixturer.recreate_database_with_schema_and_fixtures()
    return fixturer, summary


def test_full_pipeline_loads_fixture_rows(prepared, test_engine):
    _, summary = prepared

    assert summary.tables == ["posts", "users"]
    assert summary.rows_inserted == 4
    assert summary.rows_failed == 0
    assert not summary.from_cache
    assert _rows(test_engine, "SELECT id, name, note FROM users ORDER BY id") == [
        (1, "a", "none"),
        (2, "a", "x"),
    ]
    assert _rows(test_engine, "SELECT id, user_id, title FROM posts ORDER BY id") == [
        (10, 2, "hello"),
        (11, 1, "world"),
    ]


def test_schema_qualified_fixture_name_loads_into_that_table(test_settings, fixtures_dir, test_engine):
    write_fixture(fixtures_dir, "main.users.yml", USERS_FIXTURE)

    summary = Fixturer(test_settings).recreate_database_with_schema_and_fixtures()

    assert summary.tables == ["main.users"]
    assert summary.rows_inserted == 2
    assert _rows(test_engine, "SELECT id, name FROM users ORDER BY id") == [(1, "a"), (2, "a")]


def test_broken_schema_is_not_partially_applied(test_settings, schema_file, test_engine):
    fixturer = Fixturer(test_settings)
    fixturer.recreate_database()
    schema_file.write_text(
        "CREATE TABLE users (id INTEGER PRIMARY KEY);\nCREATE TABLE oops (;\n",
        encoding="utf-8",
    )

    with pytest.raises(SQLAlchemyError):
        fixturer.load_schema()

    assert _rows(test_engine, "SELECT name FROM sqlite_master WHERE type = 'table'") == []


def test_repeat_import_reuses_cache_and_restores_rows(prepared, test_engine, fixtures_dir):
    fixturer, _ = prepared
    with test_engine.begin() as conn:
        conn.execute(text("DELETE FROM posts"))
        conn.execute(text("INSERT INTO users (id, name) VALUES (99, 'stray')"))
    write_fixture(fixtures_dir, "users.yml", USERS_FIXTURE + "- id: 3\n  name: c\n")

    with mock.patch("fixturer.domain.fixtures.orchestrator.discover_fixture_files") as discover:
        summary = fixturer.import_fixtures()

    discover.assert_not_called()
    assert summary.from_cache
    assert summary.rows_inserted == 4
    assert _rows(test_engine, "SELECT id FROM users ORDER BY id") == [(1,), (2,)]
    assert _rows(test_engine, "SELECT COUNT(*) FROM posts") == [(2,)]


def test_new_cache_sees_edited_fixtures(prepared, test_settings, test_engine, fixtures_dir):
    write_fixture(fixtures_dir, "users.yml", USERS_FIXTURE + "- id: 3\n  name: c\n")

    summary = Fixturer(test_settings).import_fixtures()

    assert not summary.from_cache
    assert _rows(test_engine, "SELECT id FROM users ORDER BY id") == [(1,), (2,), (3,)]


def test_previously_loaded_tables_are_cleared(prepared, test_settings, test_engine, tmp_path):
    fixturer, _ = prepared
    other_dir = tmp_path / "other_fixtures"
    other_dir.mkdir()
    write_fixture(other_dir, "users.yml", "- id: 7\n  name: seven\n")
    other_settings = test_settings.model_copy(update={"fixtures_path": str(other_dir)})

    summary = Fixturer(other_settings, cache=fixturer.cache).import_fixtures()

    assert summary.tables == ["users"]
    assert _rows(test_engine, "SELECT id, name FROM users") == [(7, "seven")]
    assert _rows(test_engine, "SELECT COUNT(*) FROM posts") == [(0,)]


def test_malformed_fixture_does_not_abort_siblings(test_settings, fixtures_dir, test_engine):
    write_fixture(fixtures_dir, "users.yml", USERS_FIXTURE)
    write_fixture(fixtures_dir, "posts.yml", "- id: [broken\n")

    summary = Fixturer(test_settings).recreate_database_with_schema_and_fixtures()

    assert summary.skipped_files == ["posts.yml"]
    assert _rows(test_engine, "SELECT COUNT(*) FROM users") == [(2,)]
    assert _rows(test_engine, "SELECT COUNT(*) FROM posts") == [(0,)]


def test_bad_row_is_skipped_in_lenient_mode(test_settings, fixtures_dir, test_engine):
    write_fixture(
        fixtures_dir,
        "users.yml",
        """
        - id: 1
          name: a
        - id: 2
          note: name is missing
        - id: 3
          name: c
        """,
    )

    summary = Fixturer(test_settings).recreate_database_with_schema_and_fixtures()

    assert summary.rows_inserted == 2
    assert summary.rows_failed == 1
    assert _rows(test_engine, "SELECT id FROM users ORDER BY id") == [(1,), (3,)]


def test_failed_row_rolls_back_in_strict_mode(prepared, strict_settings, test_engine, tmp_path):
    bad_dir = tmp_path / "bad_fixtures"
    bad_dir.mkdir()
    write_fixture(bad_dir, "users.yml", "- id: 5\n  name: e\n- id: 6\n")
    settings = strict_settings.model_copy(update={"fixtures_path": str(bad_dir)})

    with pytest.raises(SQLAlchemyError):
        Fixturer(settings).import_fixtures()

    assert _rows(test_engine, "SELECT id FROM users ORDER BY id") == [(1,), (2,)]
    assert _rows(test_engine, "SELECT COUNT(*) FROM posts") == [(2,)]


def test_unknown_table_fails_the_load(test_settings, fixtures_dir):
    write_fixture(fixtures_dir, "users.yml", USERS_FIXTURE)
    write_fixture(fixtures_dir, "no_such_table.yml", "- id: 1\n")

    with pytest.raises(SQLAlchemyError):
        Fixturer(test_settings).recreate_database_with_schema_and_fixtures()


def test_recreate_disabled_only_imports(prepared, test_settings, test_engine):
    settings = test_settings.model_copy(update={"recreate_database": False})
    fixturer = Fixturer(settings)

    with mock.patch.object(fixturer, "recreate_database") as recreate, mock.patch.object(
        fixturer, "load_schema"
    ) as load_schema:
        summary = fixturer.recreate_database_with_schema_and_fixtures()

    recreate.assert_not_called()
    load_schema.assert_not_called()
    assert summary.rows_inserted == 4


def test_recreate_flag_is_resolved_at_construction(test_settings):
    fixturer = Fixturer(test_settings)
    test_settings.recreate_database = False

    assert fixturer.recreate_enabled is True


def test_empty_fixture_directory_is_a_no_op(test_settings):
    summary = Fixturer(test_settings).recreate_database_with_schema_and_fixtures()

    assert summary.tables == []
    assert summary.rows_inserted == 0


def test_missing_fixture_directory_fails_before_connecting(test_settings, tmp_path):
    settings = test_settings.model_copy(update={"fixtures_path": str(tmp_path / "missing")})

    with mock.patch("fixturer.fixturer.DatabaseHandle") as handle:
        with pytest.raises(OSError):
            Fixturer(settings).import_fixtures()

    handle.assert_not_called()


@pytest.mark.parametrize("count", [0, -1, 1.5, True, "4"])
def test_invalid_parallelism_fails_before_any_io(test_settings, count):
    with mock.patch("fixturer.fixturer.DatabaseHandle") as handle, mock.patch(
        "fixturer.domain.fixtures.orchestrator.discover_fixture_files"
    ) as discover:
        with pytest.raises(ConfigError):
            Fixturer(test_settings).set_parallelism(count)

    handle.assert_not_called()
    discover.assert_not_called()


def test_invalid_parallelism_setting_fails_at_construction(test_settings):
    settings = test_settings.model_copy(update={"parallelism": 0})

    with pytest.raises(ConfigError):
        Fixturer(settings)


def test_set_parallelism_is_chainable_and_sizes_pool(test_settings):
    fixturer = Fixturer(test_settings)

    assert fixturer.set_parallelism(7) is fixturer
    assert fixturer.parallelism == 7

    with mock.patch("fixturer.fixturer.DatabaseHandle") as handle:
        fixturer.recreate_database()

    assert handle.call_args.kwargs["pool_size"] == 7


def test_caches_are_independent_per_instance(prepared, test_settings):
    fixturer, _ = prepared
    other = Fixturer(test_settings)

    assert other.cache is not fixturer.cache
    assert isinstance(other.cache, ImportCache)
    assert other.cache.try_reuse(test_settings.fixtures_path) is None
