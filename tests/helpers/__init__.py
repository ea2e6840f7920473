"""Test helper utilities for the Liftout engine tests."""

from .builders import (
    BASE_TIME,
    FixedClock,
    actor_for,
    add_company,
    add_opportunity,
    add_saved_team,
    add_team,
    add_user,
    member,
    save_team,
    set_team_visibility,
)
from .executors import SynchronousExecutor

__all__ = [
    "BASE_TIME",
    "FixedClock",
    "SynchronousExecutor",
    "actor_for",
    "add_company",
    "add_opportunity",
    "add_saved_team",
    "add_team",
    "add_user",
    "member",
    "save_team",
    "set_team_visibility",
]
