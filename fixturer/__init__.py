"""Repeatable test database state from a schema file and YAML fixtures."""
from fixturer.core.config import Settings
from fixturer.core.errors import ConfigError, FixtureParseError, FixturerError
from fixturer.domain.fixtures.cache import ImportCache
from fixturer.fixturer import Fixturer, ImportSummary

__all__ = [
    "ConfigError",
    "FixtureParseError",
    "Fixturer",
    "FixturerError",
    "ImportCache",
    "ImportSummary",
    "Settings",
]
