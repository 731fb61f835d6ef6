"""
The Bird record: one row of the ``birds`` table.

Columns are scanned by position, in query-column order: the first column is
the species identifier (``bird``), the second its description. Both must be
non-NULL text; anything else is a :class:`~birdsql.db.errors.ScanError`.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict, StrictStr, ValidationError

from birdsql.db.errors import ScanError

BIRD_COLUMNS = ("bird", "description")


class Bird(BaseModel):
    """A bird species and its description."""

    model_config = ConfigDict(frozen=True)

    species: StrictStr
    description: StrictStr

    @classmethod
    def scan(cls, row: Sequence[Any], row_index: int = 0) -> Bird:
        """
        Map a two-column result row onto a Bird.

        Raises:
            ScanError: On a column count mismatch, a NULL, or a non-text value.
        """
        if len(row) != len(BIRD_COLUMNS):
            raise ScanError(
                f"could not scan row {row_index}: expected {len(BIRD_COLUMNS)} "
                f"destination arguments, got {len(row)} columns",
                row_index=row_index,
            )
        try:
            return cls(species=row[0], description=row[1])
        except ValidationError as e:
            problems = "; ".join(
                f"column {err['loc'][0]}: {err['msg']}" for err in e.errors()
            )
            raise ScanError(
                f"could not scan row {row_index}: {problems}", row_index=row_index
            ) from e

    def as_params(self) -> tuple[str, str]:
        """Return the positional parameters for an insert, in column order."""
        return (self.species, self.description)

    def __str__(self) -> str:
        return f"{{species: {self.species}, description: {self.description}}}"


def scan_birds(rows: Iterable[Sequence[Any]]) -> list[Bird]:
    """
    Scan every row into a Bird, preserving order.

    Scanning stops at the first row that fails; the rows collected so far are
    discarded and the ScanError carries the failing row's index.
    """
    return [Bird.scan(row, index) for index, row in enumerate(rows)]


__all__ = ["Bird", "BIRD_COLUMNS", "scan_birds"]
