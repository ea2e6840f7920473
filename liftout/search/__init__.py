"""Team search."""

from .service import MAX_PAGE_SIZE, TeamSearchService

__all__ = ["TeamSearchService", "MAX_PAGE_SIZE"]
