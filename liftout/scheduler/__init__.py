"""Background scheduling of the EOI expiry sweep."""

from .service import SWEEP_JOB_ID, SweepScheduler

__all__ = ["SweepScheduler", "SWEEP_JOB_ID"]
