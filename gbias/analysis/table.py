"""
# table.py is a part of the GBIAS package.
# Copyright (C) 2025 GBIAS authors (see AUTHORS for details).
# GBIAS is licensed under the GNU GPL v3 or later, see LICENSE for details.
# Please respect the MCnet Guidelines, see GUIDELINES for details.
"""
"""
Tab-separated event table output.

The table has one header line with the column names followed by one line per
accepted event. Columns are written in the order the row lists them, values
are separated by a single tab and every line ends with a newline.
"""
import os
from typing import Optional, Sequence, Tuple

import config

DEFAULT_OUTPUT_NAME = config.output_filename
# An output name of just "e" selects the default table name.
DEFAULT_OUTPUT_SHORTCUT = "e"

Row = Sequence[Tuple[str, Optional[float]]]


def resolve_output_name(name: Optional[str], default: str = DEFAULT_OUTPUT_NAME) -> str:
    """Map an empty name or the "e" shortcut to the default table name."""
    if name is None:
        return default
    name = name.strip()
    if not name or name == DEFAULT_OUTPUT_SHORTCUT:
        return default
    return name


class EventLoopState:
    """Per-run bookkeeping owned by the event loop driver."""

    def __init__(self):
        self.event_number = 0
        self.header_written = False

    def __repr__(self):
        return f"EventLoopState(event_number={self.event_number}, header_written={self.header_written})"


class EventTableWriter:
    """
    Write accepted event rows to a plain-text, tab-separated table.

    If the file cannot be opened a single warning is printed and the writer
    turns into a no-op for the rest of the run; the caller keeps processing
    events and the loop state keeps counting them.

    Usage:
        state = EventLoopState()
        with EventTableWriter("eventdata.dat") as writer:
            writer.write_row(row, state)
    """

    def __init__(self, path: str, float_format: str = config.float_format):
        self.path = path
        self.float_format = float_format
        self._file = None

    @property
    def is_open(self) -> bool:
        return self._file is not None

    def open(self) -> bool:
        """Open the table for writing. Returns False if the sink is unavailable."""
        try:
            parent = os.path.dirname(self.path)
            if parent:
                os.makedirs(parent, exist_ok=True)
            self._file = open(self.path, "w", encoding="utf-8")
        except OSError as e:
            self._file = None
            print(f"[WARNING] Could not open file. ({self.path}: {e.strerror or e})")
        return self.is_open

    def close(self, complete: bool = True):
        """Close the table; the completion message is printed only for a complete run."""
        if self._file is None:
            return
        self._file.close()
        self._file = None
        if complete:
            print("Everything written to file.")

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close(complete=exc_type is None)

    def _format(self, value: Optional[float]) -> str:
        # Absent values keep their column so every line has the header's width.
        if value is None:
            return "nan"
        return self.float_format % float(value)

    def write_row(self, row: Row, state: EventLoopState):
        """Write the header on the first call of the run, then the row values."""
        if not state.header_written:
            if self._file is not None:
                self._file.write("\t".join(name for name, _ in row) + "\n")
            state.header_written = True

        state.event_number += 1

        if self._file is not None:
            self._file.write("\t".join(self._format(value) for _, value in row) + "\n")
