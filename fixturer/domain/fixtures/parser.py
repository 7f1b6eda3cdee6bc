from collections.abc import Mapping
from typing import Any, Dict, List

import yaml

from fixturer.core.errors import FixtureParseError


def parse_fixture(content: bytes, source: str = "<fixture>") -> List[Dict[str, Any]]:
    """
    Decode one fixture file into its records.

    A fixture is a YAML sequence of field mappings, one mapping per row.
    An empty document yields no records.

    Raises:
        FixtureParseError: The content is not valid YAML or is not a
            sequence of mappings.
    """
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise FixtureParseError(source, str(exc)) from exc

    if data is None:
        return []
    if not isinstance(data, list):
        raise FixtureParseError(source, f"expected a sequence of mappings, got {type(data).__name__}")

    records = []
    for index, item in enumerate(data):
        if not isinstance(item, Mapping):
            raise FixtureParseError(source, f"entry {index} is {type(item).__name__}, not a mapping")
        records.append({str(key): value for key, value in item.items()})
    return records
