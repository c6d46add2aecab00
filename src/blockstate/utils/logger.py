"""
blockstate.utils.logger
=======================
CSV trace of the moves committed on a :pyclass:`blockstate.block_state.BlockState`.

Row schema
----------
```
move_index, elapsed_seconds, vertex, source_block, target_block, nonempty_blocks
```
Only every ``log_every``-th committed move produces a row, so a chain
running millions of moves keeps a coarse trace on disk.
"""

import csv
import time
from pathlib import Path
from typing import Optional, TextIO, Union

from blockstate.utils.config import LoggingConfig

__all__ = ["CSVLogger"]


class CSVLogger:
    """Light-weight CSV logger for block-state move traces.

    Parameters
    ----------
    file
        Path to a CSV file *or* an already opened file handle. If a path
        is given and the file exists it will be **overwritten** so that
        every run starts with a clean log.
    log_every
        Only every ``log_every``-th call to :py:meth:`log` results in a
        new row.
    """

    header = [
        "move_index",
        "elapsed_seconds",
        "vertex",
        "source_block",
        "target_block",
        "nonempty_blocks",
    ]

    # ---------------------------------------------------------------------
    def __init__(
        self,
        file: Union[str, Path, TextIO],
        *,
        log_every: int = 1_000,
    ):
        if int(log_every) < 1:
            raise ValueError("log_every must be a positive integer")
        self.log_every = int(log_every)
        self._start = time.time()

        if isinstance(file, (str, Path)):
            path = Path(file)
            path.parent.mkdir(parents=True, exist_ok=True)
            self._own_handle = True
            self._fh: TextIO = path.open("w", newline="")  # start from scratch every run
            self._writer = csv.writer(self._fh)
            self._writer.writerow(self.header)
        else:  # already a file-like object
            self._own_handle = False
            self._fh = file
            self._writer = csv.writer(self._fh)
            # assume caller has written the header

        self._rows_since_flush = 0

    @classmethod
    def from_config(cls, config: LoggingConfig) -> Optional["CSVLogger"]:
        """Logger for ``config['log_path']``, or None when no path is set."""
        if not config.get("log_path"):
            return None
        return cls(config["log_path"], log_every=config["log_every"])

    # ------------------------------------------------------------------
    def should_log(self, move_index: int) -> bool:
        return move_index % self.log_every == 0

    def log(
        self,
        move_index: int,
        vertex: int,
        source_block: int,
        target_block: int,
        nonempty_blocks: int,
    ) -> None:
        """Append one new row if ``move_index`` meets the cadence."""
        if not self.should_log(move_index):
            return

        elapsed = time.time() - self._start
        self._writer.writerow([
            move_index,
            f"{elapsed:.3f}",
            vertex,
            source_block,
            target_block,
            nonempty_blocks,
        ])
        # Flush every ~10 rows to amortise disk writes.
        self._rows_since_flush += 1
        if self._rows_since_flush >= 10:
            self._fh.flush()
            self._rows_since_flush = 0

    # ------------------------------------------------------------------
    def flush(self):
        self._fh.flush()
        self._rows_since_flush = 0

    def close(self):
        if self._own_handle:
            self._fh.close()
        else:
            self._fh.flush()

    # Context-manager sugar ------------------------------------------------
    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
