"""
blockfit.utils.logger
=====================
CSV trace of the Markov chain and the stderr status lines of a fit.

Row schema
----------
```
step, elapsed_seconds, num_types, log_likelihood,
best_log_likelihood, accepted, acceptance_ratio
```
"""

import csv
import sys
import time
from pathlib import Path
from typing import Union, TextIO

from tqdm import tqdm

__all__ = ["ChainLogger", "StatusLog"]


class StatusLog:
    """Verbosity-filtered status messages on stderr.

    Messages go through :py:func:`tqdm.write` so that they do not tear
    the progress bar of the model-selection sweep.

    Parameters
    ----------
    verbosity
        0 shows errors only, 1 adds info messages and progress lines,
        2 adds debug messages.
    """

    def __init__(self, verbosity: int = 1, file: TextIO = sys.stderr):
        self.verbosity = int(verbosity)
        self.file = file

    def _emit(self, level: int, message: str, *args) -> None:
        if self.verbosity >= level:
            tqdm.write(message % args if args else message, file=self.file)

    def error(self, message: str, *args) -> None:
        self._emit(0, message, *args)

    def info(self, message: str, *args) -> None:
        self._emit(1, message, *args)

    def debug(self, message: str, *args) -> None:
        self._emit(2, message, *args)

    @property
    def quiet(self) -> bool:
        return self.verbosity < 1

    @property
    def verbose(self) -> bool:
        return self.verbosity > 1


class ChainLogger:
    """CSV trace of a Markov chain, one row every ``log_every`` steps.

    Parameters
    ----------
    file
        Path of the CSV file, truncated and given a header row, or an open
        text handle that is written to as is.
    log_every
        Steps between two rows.
    """

    header = [
        "step",
        "elapsed_seconds",
        "num_types",
        "log_likelihood",
        "best_log_likelihood",
        "accepted",
        "acceptance_ratio",
    ]

    # ---------------------------------------------------------------------
    def __init__(
        self,
        file: Union[str, Path, TextIO],
        *,
        log_every: int = 1_000,
    ):
        self.log_every = int(log_every)
        self._start = time.time()

        if isinstance(file, (str, Path)):
            self._own_handle = True
            path = Path(file)
            path.parent.mkdir(parents=True, exist_ok=True)
            self._fh: TextIO = path.open("w", newline="")
            self._writer = csv.writer(self._fh)
            self._writer.writerow(self.header)
        else:
            self._own_handle = False
            self._fh = file
            self._writer = csv.writer(self._fh)
            # header is the caller's business

        self._rows_since_flush = 0

    # ------------------------------------------------------------------
    def log(
        self,
        step: int,
        num_types: int,
        log_likelihood: float,
        best_log_likelihood: float,
        accepted: bool,
        acceptance_ratio: float,
    ) -> None:
        """Append one new row if ``step`` meets the cadence."""
        if step % self.log_every:
            return

        elapsed = time.time() - self._start
        self._writer.writerow([
            step,
            f"{elapsed:.3f}",
            num_types,
            f"{log_likelihood:.6f}",
            f"{best_log_likelihood:.6f}",
            int(accepted),
            f"{acceptance_ratio:.6f}",
        ])
        # flush every 10 rows
        self._rows_since_flush += 1
        if self._rows_since_flush >= 10:
            self._fh.flush()
            self._rows_since_flush = 0

    # ------------------------------------------------------------------
    def close(self):
        if self._own_handle:
            self._fh.close()
        else:
            self._fh.flush()

    # ------------------------------------------------------------------
    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
