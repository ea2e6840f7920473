"""Liftout confidential matching and visibility control engine."""

__version__ = "0.4.0"
