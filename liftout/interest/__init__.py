"""Expressions of interest between teams, companies and opportunities."""

from .service import InterestService, effective_status, eoi_view

__all__ = ["InterestService", "effective_status", "eoi_view"]
