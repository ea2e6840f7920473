"""Masking of identifying team data.

``project_team`` is the single projection used by every surface that renders
a team (profile, search, exports), so a team is masked identically wherever
it appears. All helpers are pure and idempotent: masking masked output
changes nothing.
"""

import re
from typing import Any, Dict, Mapping, Optional

from liftout.domain.models import Team, TeamMember, User

from .resolver import VisibilityDecision

UNDISCLOSED_LOCATION = "Undisclosed"

REGIONS: Dict[str, str] = {
    "new york": "Northeast US",
    "boston": "Northeast US",
    "los angeles": "West Coast US",
    "san francisco": "West Coast US",
    "seattle": "West Coast US",
    "chicago": "Midwest US",
    "austin": "Southwest US",
    "dallas": "Southwest US",
    "houston": "Southwest US",
    "denver": "Mountain West US",
    "miami": "Southeast US",
    "atlanta": "Southeast US",
    "london": "United Kingdom",
    "england": "United Kingdom",
    "uk": "United Kingdom",
    "remote": "Remote",
}

# Values generalize_location may return; passing one back in is a no-op
_REGION_NAMES = frozenset(REGIONS.values()) | {UNDISCLOSED_LOCATION}

_COMPANY_SUFFIX = r"(?:Corporation|Company|Partners|Group|Corp|Inc|LLC|LLP|Ltd|Co)\b\.?"
_COMPANY_NAME_RE = re.compile(r"\b[A-Z][a-zA-Z]+(?:\s+[A-Z][a-zA-Z]+)*\s*,?\s*" + _COMPANY_SUFFIX)
_AT_COMPANY_RE = re.compile(r"\bat\s+(?!\[Company\])[A-Z][a-zA-Z]+(?:\s+[A-Z][a-zA-Z]+)*")

_TITLE_LEVELS = (
    (re.compile(r"\bsenior\b|\bsr\b\.?"), "Senior"),
    (re.compile(r"\blead\b|\bprincipal\b"), "Lead"),
    (re.compile(r"\bdirector\b"), "Director"),
    (re.compile(r"\bvp\b|vice president|vp-level"), "VP-level"),
    (re.compile(r"\bhead\b"), "Head"),
    (re.compile(r"\bjunior\b|\bjr\b\.?"), "Junior"),
    (re.compile(r"\bmanager\b"), "Manager"),
)

_TITLE_FUNCTIONS = (
    (re.compile(r"engineer|developer"), "Engineer"),
    (re.compile(r"design"), "Designer"),
    (re.compile(r"product"), "Product"),
    (re.compile(r"marketing"), "Marketing"),
    (re.compile(r"sales"), "Sales"),
    (re.compile(r"operations|\bops\b"), "Operations"),
    (re.compile(r"finance|accounting"), "Finance"),
    (re.compile(r"legal|attorney"), "Legal"),
    (re.compile(r"\bhr\b|people"), "People"),
)


def anonymous_team_name(team_id: str) -> str:
    return f"Anonymous Team #{team_id[-6:].upper()}"


def generalize_location(location: Optional[str], overrides: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """Map a city-level location onto a region, or None when no rule matches.

    ``overrides`` (lower-cased city -> region) are consulted before the
    built-in table.
    """
    if not location:
        return None
    if location in _REGION_NAMES:
        return location

    lowered = location.lower()
    for table in (overrides or {}, REGIONS):
        for city, region in table.items():
            if re.search(rf"\b{re.escape(city)}\b", lowered):
                return region
    return None


def generalize_title(title: Optional[str]) -> Optional[str]:
    """Reduce a job title to "<level> <function>", e.g. "Senior Engineer"."""
    if not title:
        return None

    lowered = title.lower()
    level = next((label for pattern, label in _TITLE_LEVELS if pattern.search(lowered)), "")
    function = next((label for pattern, label in _TITLE_FUNCTIONS if pattern.search(lowered)), "Professional")
    return f"{level} {function}" if level else function


def mask_company_names(text: Optional[str]) -> Optional[str]:
    if not text:
        return text
    masked = _COMPANY_NAME_RE.sub("[Company]", text)
    return _AT_COMPANY_RE.sub("at [Company]", masked)


def _member_view(member: TeamMember, user: Optional[User]) -> Dict[str, Any]:
    return {
        "userId": member.user_id,
        "name": user.display_name if user else None,
        "email": user.email if user else None,
        "role": member.role,
        "title": member.title,
        "seniority": member.seniority,
        "yearsExperience": member.years_experience,
        "isLead": member.is_lead,
        "isAdmin": member.is_admin,
    }


def _anonymous_member_view(member: TeamMember, number: int) -> Dict[str, Any]:
    return {
        "name": f"Team Member {number}",
        "role": member.role,
        "title": generalize_title(member.title),
        "seniority": member.seniority,
        "yearsExperience": member.years_experience,
        "isLead": member.is_lead,
    }


def project_team(
    team: Team,
    decision: VisibilityDecision,
    users: Optional[Mapping[str, User]] = None,
    region_overrides: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """Render a team for a viewer who is allowed to see it.

    Args:
        team: The team
        decision: The viewer's visibility decision; must have can_view=True
        users: Member profiles keyed by user id (names and e-mails)
        region_overrides: Extra city -> region pairs for location masking

    Raises:
        ValueError: If the decision does not allow viewing
    """
    if not decision.can_view:
        raise ValueError(f"Team {team.id} is not viewable under this decision")

    users = users or {}
    active = team.active_members

    if not decision.show_anonymous:
        return {
            "id": team.id,
            "name": team.name,
            "description": team.description,
            "industry": team.industry,
            "location": team.location,
            "size": team.size,
            "visibility": team.visibility.value,
            "createdBy": team.created_by,
            "isAnonymized": False,
            "memberCount": len(active),
            "members": [_member_view(m, users.get(m.user_id)) for m in active],
        }

    location = None
    if team.location:
        location = generalize_location(team.location, region_overrides) or UNDISCLOSED_LOCATION

    return {
        "id": team.id,
        "name": anonymous_team_name(team.id),
        "description": mask_company_names(team.description),
        "industry": team.industry,
        "location": location,
        "size": team.size,
        "visibility": team.visibility.value,
        "isAnonymized": True,
        "memberCount": len(active),
        "members": [_anonymous_member_view(m, i + 1) for i, m in enumerate(active)],
    }
