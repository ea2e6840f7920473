"""Seed data builders. Each writes through the repositories in its own session."""

from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from liftout.domain.models import (
    ActorContext,
    Company,
    CompanyRole,
    CompanyUser,
    MemberStatus,
    Opportunity,
    OpportunityStatus,
    SavedItem,
    SavedItemType,
    Team,
    TeamMember,
    TeamVisibility,
    User,
    UserType,
    VerificationStatus,
)
from liftout.persistence import (
    CompanyRepository,
    CompanyUserRepository,
    OpportunityRepository,
    SavedItemRepository,
    TeamRepository,
    UserRepository,
    get_session,
)
from liftout.persistence.schema import TeamModel

BASE_TIME = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = BASE_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def add_user(
    user_id: str,
    user_type: UserType = UserType.INDIVIDUAL,
    first_name: Optional[str] = None,
    last_name: str = "Tester",
    company_id: Optional[str] = None,
    notify_on_message: bool = True,
    notify_on_interest: bool = True,
) -> User:
    user = User(
        id=user_id,
        email=f"{user_id}@example.com",
        first_name=first_name or user_id.capitalize(),
        last_name=last_name,
        user_type=user_type,
        notify_on_message=notify_on_message,
        notify_on_interest=notify_on_interest,
        created_at=BASE_TIME,
    )
    with get_session() as session:
        UserRepository(session).add(user)
        if company_id is not None:
            CompanyUserRepository(session).add(
                CompanyUser(user_id=user_id, company_id=company_id, role=CompanyRole.ADMIN)
            )
    return user


def add_company(company_id: str, name: str = "Acme Capital", verified: bool = True) -> Company:
    company = Company(
        id=company_id,
        name=name,
        verification_status=VerificationStatus.VERIFIED if verified else VerificationStatus.UNVERIFIED,
        created_at=BASE_TIME,
    )
    with get_session() as session:
        CompanyRepository(session).add(company)
    return company


def member(
    user_id: str,
    is_admin: bool = False,
    is_lead: bool = False,
    title: Optional[str] = "Senior Software Engineer",
    status: MemberStatus = MemberStatus.ACTIVE,
) -> TeamMember:
    return TeamMember(
        user_id=user_id,
        role="engineer",
        title=title,
        seniority="senior",
        years_experience=8,
        is_admin=is_admin,
        is_lead=is_lead,
        status=status,
        joined_at=BASE_TIME,
    )


def save_team(team: Team) -> Team:
    with get_session() as session:
        return TeamRepository(session).add(team)


def add_team(
    team_id: str,
    created_by: str,
    visibility: TeamVisibility = TeamVisibility.PUBLIC,
    is_anonymous: bool = False,
    members: Iterable[TeamMember] = (),
    blocked: Iterable[str] = (),
    name: Optional[str] = None,
    location: Optional[str] = "New York, NY",
    description: Optional[str] = "Quant team currently at Goldman Sachs Group",
    industry: str = "Finance",
    created_at: datetime = BASE_TIME,
) -> Team:
    members = list(members)
    return save_team(
        Team(
            id=team_id,
            name=name or f"Team {team_id}",
            description=description,
            industry=industry,
            location=location,
            size=len(members),
            visibility=visibility,
            is_anonymous=is_anonymous,
            blocked_companies=list(blocked),
            created_by=created_by,
            members=members,
            created_at=created_at,
        )
    )


def add_opportunity(
    opportunity_id: str,
    company_id: str,
    title: str = "Acquire a trading desk",
    status: OpportunityStatus = OpportunityStatus.ACTIVE,
) -> Opportunity:
    opportunity = Opportunity(
        id=opportunity_id, company_id=company_id, title=title, status=status, created_at=BASE_TIME
    )
    with get_session() as session:
        OpportunityRepository(session).add(opportunity)
    return opportunity


def actor_for(user_id: str, role: UserType = UserType.INDIVIDUAL, company_id: Optional[str] = None) -> ActorContext:
    return ActorContext(user_id=user_id, role=role, company_id=company_id)


def set_team_visibility(team_id: str, visibility: TeamVisibility, is_anonymous: bool = False) -> None:
    """Change a team's tier in place, the way a profile edit would."""
    with get_session() as session:
        model = session.get(TeamModel, team_id)
        model.visibility = visibility.value
        model.is_anonymous = is_anonymous


def add_saved_team(user_id: str, team_id: str, created_at: datetime = BASE_TIME) -> None:
    with get_session() as session:
        SavedItemRepository(session).add(
            SavedItem(user_id=user_id, item_type=SavedItemType.TEAM, item_id=team_id, created_at=created_at)
        )
