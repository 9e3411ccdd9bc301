"""
CSV source adapter.

Uses csv.reader over in-memory text or a file.  Configurable: columns,
delimiter, quoting, skip_rows and has_header (True, False or "auto").
Handles a BOM at the start of the text.  Streams rows.

Columns are positional: a row shorter than ``columns`` is padded with
empty strings and extra cells are ignored, so exports with a trailing
column missing still load.
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator

_QUOTING = {
    "minimal": csv.QUOTE_MINIMAL,
    "all": csv.QUOTE_ALL,
    "nonnumeric": csv.QUOTE_NONNUMERIC,
    "none": csv.QUOTE_NONE,
}

_BOM = "\ufeff"


@dataclass(frozen=True)
class SourceRow:
    """One data row: 1-based source line number plus trimmed cells by column."""

    line: int
    values: dict[str, str]

    def get(self, column: str) -> str:
        return self.values.get(column, "")


def _get_quoting(options: dict[str, Any]) -> int:
    q = options.get("quoting", "minimal")
    if isinstance(q, int):
        return q
    return _QUOTING.get(str(q).lower(), csv.QUOTE_MINIMAL)


def _is_header(cells: list[str], marker: str | None) -> bool:
    if marker is None:
        return False
    return any(marker in cell.strip().lower() for cell in cells)


class CsvSourceAdapter:
    """Read CSV text as one SourceRow per non-blank data row."""

    def read(self, source: str | Path, options: dict[str, Any]) -> Iterator[SourceRow]:
        """
        Yield data rows from ``source`` (CSV text, or a Path to a file).

        Options:
            columns: required list of column names, in file order.
            has_header: True (default), False, or "auto" -- with "auto" the
                first row is a header iff a cell contains ``header_marker``.
            header_marker: lower-case text identifying a header row.
            delimiter, quoting, skip_rows: as for ``csv.reader``.
        """
        columns: list[str] = list(options["columns"])
        delimiter = options.get("delimiter", ",")
        has_header = options.get("has_header", True)
        marker = options.get("header_marker")
        skip_rows = int(options.get("skip_rows", 0))
        quoting = _get_quoting(options)

        if isinstance(source, Path):
            text = source.read_text(encoding="utf-8-sig")
        else:
            text = source.removeprefix(_BOM)

        reader = csv.reader(io.StringIO(text), delimiter=delimiter, quoting=quoting)
        first = True
        for row in reader:
            line = reader.line_num
            if line <= skip_rows:
                continue
            if not any(cell.strip() for cell in row):
                continue
            if first:
                first = False
                if has_header is True or (has_header == "auto" and _is_header(row, marker)):
                    continue
            cells = [cell.strip() for cell in row] + [""] * (len(columns) - len(row))
            yield SourceRow(line=line, values=dict(zip(columns, cells)))
