# lugx_common/sql.py
from typing import Any, Dict, Iterable, List, Tuple

from sqlalchemy import Table, update
from sqlalchemy.sql import Update


class UpdateBuilder:
    """
    Collects (column, value) pairs for a partial UPDATE over a fixed set of
    column names. Values only ever travel as bound parameters.
    """

    def __init__(self, table: Table, columns: Iterable[str]):
        self.table = table
        self.columns = tuple(columns)
        self._pairs: List[Tuple[str, Any]] = []

    def set(self, column: str, value: Any) -> "UpdateBuilder":
        if column not in self.columns:
            raise KeyError(f"column {column!r} is not updatable on {self.table.name}")
        self._pairs = [(c, v) for c, v in self._pairs if c != column]
        self._pairs.append((column, value))
        return self

    def update_from(self, fields: Dict[str, Any]) -> "UpdateBuilder":
        """Take every known column present in `fields`; anything else is ignored."""
        for column in self.columns:
            if column in fields:
                self.set(column, fields[column])
        return self

    @property
    def pairs(self) -> List[Tuple[str, Any]]:
        return list(self._pairs)

    def __len__(self) -> int:
        return len(self._pairs)

    def build(self, *where) -> Update:
        if not self._pairs:
            raise ValueError("no fields to update")
        return update(self.table).where(*where).values(dict(self._pairs))
