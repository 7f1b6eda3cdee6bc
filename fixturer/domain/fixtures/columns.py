"""
Column alignment for fixture rows.

Fixture authors may leave out columns that have a schema default, so rows of
one table can carry different field sets. ``build_table_batch`` folds them
into one canonical column list (union of all keys, first-seen order) and one
positional tuple per row, with ``ABSENT`` in the slots a row did not supply.
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple


class _Absent:
    """Marker for a column a fixture row did not supply."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "<absent>"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self):
        return (_Absent, ())


ABSENT = _Absent()


@dataclass(frozen=True)
class TableBatch:
    table_name: str
    columns: Tuple[str, ...]
    rows: Tuple[Tuple[Any, ...], ...]

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def row_values(self, index: int) -> Dict[str, Any]:
        """Column -> value for the columns row ``index`` actually supplied."""
        return {
            column: value
            for column, value in zip(self.columns, self.rows[index])
            if value is not ABSENT
        }

    def iter_row_values(self) -> Iterable[Dict[str, Any]]:
        for index in range(len(self.rows)):
            yield self.row_values(index)


def union_columns(records: Iterable[Mapping[str, Any]]) -> List[str]:
    seen = {}
    for record in records:
        for key in record:
            seen.setdefault(key, None)
    return list(seen)


def build_table_batch(table_name: str, records: Sequence[Mapping[str, Any]]) -> TableBatch:
    columns = union_columns(records)
    rows = tuple(
        tuple(record.get(column, ABSENT) for column in columns)
        for record in records
    )
    return TableBatch(table_name=table_name, columns=tuple(columns), rows=rows)
