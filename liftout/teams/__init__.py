"""Team profiles and block lists."""

from .service import TeamService

__all__ = ["TeamService"]
