"""CSV table codec for the enrichment pipeline.

Rows are decoded with a stable column order and re-encoded with the exact
input header, so an enriched table never gains or loses columns. Used by
``core/jobs.py`` (upload validation) and ``enrichment/pipeline.py``
(checkpointing)."""

import csv
import io
import os
import re
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional, Union

logger = logging.getLogger(__name__)

__all__ = [
    "Table",
    "Record",
    "TableFormatError",
    "normalise_column_name",
    "parse_table",
    "read_table",
    "write_table",
]


class TableFormatError(ValueError):
    """The input is not a CSV table with a header row."""


def normalise_column_name(name: str) -> str:
    """Lower-case a header and collapse non-alphanumeric runs to ``_``."""
    return re.sub(r"[^a-z0-9]+", "_", str(name).strip().lower()).strip("_")


@dataclass
class Table:
    """Header plus data rows, every row exactly ``len(header)`` wide."""

    header: list[str]
    rows: list[list[str]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.rows)

    def records(self) -> Iterator["Record"]:
        for values in self.rows:
            yield Record(self.header, values)

    def record(self, index: int) -> "Record":
        return Record(self.header, self.rows[index])

    def column_index(self, name: str) -> Optional[int]:
        """Index of the first header matching ``name`` after normalisation."""
        wanted = normalise_column_name(name)
        for index, column in enumerate(self.header):
            if normalise_column_name(column) == wanted:
                return index
        return None


class Record:
    """One row viewed as an ordered mapping from column name to value.

    Writes go straight into the owning table's row list, so a table
    checkpoint always reflects every enrichment applied so far.
    """

    def __init__(self, header: list[str], values: list[str]) -> None:
        self.header = header
        self.values = values

    def _index(self, name: str) -> Optional[int]:
        wanted = normalise_column_name(name)
        for index, column in enumerate(self.header):
            if normalise_column_name(column) == wanted:
                return index
        return None

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self._index(name) is not None

    def __getitem__(self, name: str) -> str:
        index = self._index(name)
        if index is None:
            raise KeyError(name)
        return self.values[index]

    def __setitem__(self, name: str, value: str) -> None:
        index = self._index(name)
        if index is None:
            raise KeyError(name)
        self.values[index] = value

    def get(self, name: str, default: str = "") -> str:
        index = self._index(name)
        return default if index is None else self.values[index]

    def value_at(self, index: int) -> str:
        return self.values[index] if 0 <= index < len(self.values) else ""

    def as_dict(self) -> dict[str, str]:
        return dict(zip(self.header, self.values))


def _fit_row(row: list[str], width: int, line: int) -> list[str]:
    if len(row) < width:
        return row + [""] * (width - len(row))
    if len(row) > width:
        logger.warning(
            "CSV line %d has %d cells, header has %d; extra cells dropped",
            line, len(row), width,
        )
    return row[:width]


def parse_table(text: str) -> Table:
    """Decode CSV text into a :class:`Table`.

    Args:
        text: Full CSV document; the first row is the header.

    Returns:
        Table whose rows are padded or truncated to the header width.
        Physically empty lines are skipped; rows of empty cells are kept.
        Header cells are kept verbatim so the output header matches the input.

    Raises:
        TableFormatError: When the document has no header row.
    """
    reader = csv.reader(io.StringIO(text))
    try:
        header = next(reader)
    except StopIteration:
        raise TableFormatError("CSV input is empty")
    except csv.Error as exc:
        raise TableFormatError(f"Malformed CSV: {exc}") from exc

    if not any(column.strip() for column in header):
        raise TableFormatError("CSV header row is empty")

    rows: list[list[str]] = []
    try:
        for row in reader:
            if not row:
                continue
            rows.append(_fit_row(row, len(header), reader.line_num))
    except csv.Error as exc:
        raise TableFormatError(f"Malformed CSV: {exc}") from exc
    return Table(header=header, rows=rows)


def read_table(path: Union[str, Path]) -> Table:
    """Read a CSV file (UTF-8, optional BOM) into a :class:`Table`."""
    with open(path, "r", encoding="utf-8-sig", newline="") as handle:
        return parse_table(handle.read())


def write_table(table: Table, path: Union[str, Path]) -> None:
    """Atomically rewrite ``path`` with the full table.

    Writes a sibling ``.tmp`` file and ``os.replace``-s it over the target,
    so readers only ever see a complete previous or complete new table.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.with_name(target.name + ".tmp")
    with open(tmp, "w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle)
        writer.writerow(table.header)
        writer.writerows(table.rows)
    os.replace(tmp, target)
    logger.debug("write_table: %d rows -> %s", len(table.rows), target)
