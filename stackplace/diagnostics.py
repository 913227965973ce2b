"""
Diagnostics configuration.

Verbosity and trace switches are passed explicitly to the components that
use them; nothing in the package reads process-wide debug flags.
"""

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional


class Verbosity(IntEnum):
    """How much progress the search reports."""
    MINIMAL = 0  # Start and final summary only
    MEDIUM = 1  # Plus one line per temperature level
    MAXIMUM = 2  # Plus phase transitions and calibration details


@dataclass
class Diagnostics:
    """Verbosity level and per-component trace switches.

    Trace output is emitted at DEBUG level on the component's own logger,
    so it only shows up if logging is configured accordingly.
    """
    verbosity: Verbosity = Verbosity.MINIMAL
    trace_operations: bool = False  # Every proposed perturbation
    trace_layout: bool = False  # Every decoded sequence
    trace_alignment: bool = False  # Every violated alignment requirement
    trace_thermal: bool = False  # Mask setup and per-evaluation thermal scalars

    @property
    def any_trace(self) -> bool:
        return self.trace_operations or self.trace_layout or self.trace_alignment or self.trace_thermal

    def configure_logging(self, log_file: Optional[str] = None) -> None:
        """Configure the root logger to match this diagnostics setup."""
        level = logging.DEBUG if self.any_trace or self.verbosity >= Verbosity.MAXIMUM else logging.INFO
        kwargs = {
            "level": level,
            "format": '%(asctime)s %(levelname)s %(name)s: %(message)s',
        }
        if log_file:
            kwargs["filename"] = log_file
        logging.basicConfig(**kwargs)

    @classmethod
    def from_verbosity(cls, count: int, trace: bool = False) -> 'Diagnostics':
        """Build from a CLI -v count (0, 1, 2+)."""
        verbosity = Verbosity(min(max(count, 0), Verbosity.MAXIMUM))
        return cls(
            verbosity=verbosity,
            trace_operations=trace,
            trace_layout=trace,
            trace_alignment=trace,
            trace_thermal=trace,
        )
