"""Team search behind the shared list filter."""

from typing import Any, Callable, Dict, Mapping, Optional

from liftout.domain.exceptions import ValidationFailedError
from liftout.domain.models import ActorContext
from liftout.logging import get_logger
from liftout.persistence.database import get_session
from liftout.persistence.repositories import TeamRepository
from liftout.visibility.filters import TeamListFilter

logger = get_logger(__name__, component="search")

MAX_PAGE_SIZE = 100


def _contains(value: Optional[str], needle: str) -> bool:
    return bool(value) and needle in value.lower()


def matches_projection(projected: Dict[str, Any], query: Optional[str], location: Optional[str]) -> bool:
    """Match free text and location against what the viewer is shown.

    An anonymized team is only findable through its masked name, masked
    description and region, never through the hidden values.
    """
    if query:
        needle = query.strip().lower()
        if not (_contains(projected["name"], needle) or _contains(projected["description"], needle)):
            return False
    if location:
        if not _contains(projected["location"], location.strip().lower()):
            return False
    return True


class TeamSearchService:
    def __init__(
        self,
        session_factory: Callable = get_session,
        region_overrides: Optional[Mapping[str, str]] = None,
    ):
        self.session_factory = session_factory
        self.region_overrides = dict(region_overrides or {})

    def search(
        self,
        actor: ActorContext,
        query: Optional[str] = None,
        industry: Optional[str] = None,
        location: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Dict[str, Any]:
        """Matching teams the actor may see, anonymized where required.

        Paging applies to the visible, matching teams, newest first.
        """
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationFailedError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        if offset < 0:
            raise ValidationFailedError("offset must not be negative")

        with self.session_factory() as session:
            teams = TeamRepository(session).search(industry)
            projected = TeamListFilter(session, region_overrides=self.region_overrides).apply(teams, actor)

        matched = [team for team in projected if matches_projection(team, query, location)]
        results = matched[offset : offset + limit]

        logger.debug(
            f"Search matched {len(matched)} of {len(teams)} teams",
            extra={"event": "search.completed", "result_count": len(results), "match_count": len(matched)},
        )
        return {"teams": results, "count": len(results), "total": len(matched), "limit": limit, "offset": offset}
