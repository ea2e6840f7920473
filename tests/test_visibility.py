"""Unit tests for the visibility resolver and verification gate.

Covers:
- Member/creator/admin bypass
- Verification requirement for anonymous and selective teams
- Legacy is_anonymous flag read with OR
- Block list evaluated after the tier check, for every tier
- Monotonicity: verifying a company never hides a team
- Store-backed resolver and gate lookups
"""

import pytest

from liftout.domain.exceptions import ForbiddenBlockedError, ForbiddenVerificationError
from liftout.domain.models import (
    ActorContext,
    Team,
    TeamVisibility,
    UserType,
    VerificationStatus,
)
from liftout.persistence import (
    CompanyRepository,
    TeamRepository,
    close_database,
    get_session,
    init_database,
)
from liftout.visibility import (
    REASON_BLOCKED,
    REASON_VERIFICATION_REQUIRED,
    VerificationGate,
    VerificationResult,
    VisibilityResolver,
    decide_visibility,
)
from tests.helpers import BASE_TIME, actor_for, add_company, add_team, add_user, member

COMPANY_ACTOR = ActorContext(user_id="recruiter", role=UserType.COMPANY, company_id="c1")
VERIFIED = VerificationResult(is_verified=True, company_id="c1")
UNVERIFIED = VerificationResult(is_verified=False, company_id="c1")
NO_COMPANY = VerificationResult(is_verified=False, company_id=None)


def make_team(visibility=TeamVisibility.PUBLIC, is_anonymous=False, blocked=(), members=()):
    return Team(
        id="team-abc123",
        name="Desk One",
        visibility=visibility,
        is_anonymous=is_anonymous,
        blocked_companies=list(blocked),
        created_by="founder",
        members=list(members),
    )


class TestDecideVisibility:
    """Tests for the pure decision function."""

    def test_public_team_visible_to_unverified_company(self):
        decision = decide_visibility(make_team(), COMPANY_ACTOR, UNVERIFIED, is_member=False)

        assert decision.can_view is True
        assert decision.show_anonymous is False
        assert decision.reason is None

    def test_anonymous_team_requires_verification(self):
        decision = decide_visibility(
            make_team(TeamVisibility.ANONYMOUS), COMPANY_ACTOR, UNVERIFIED, is_member=False
        )

        assert decision.can_view is False
        assert decision.reason == REASON_VERIFICATION_REQUIRED

    def test_anonymous_team_visible_masked_to_verified_company(self):
        decision = decide_visibility(
            make_team(TeamVisibility.ANONYMOUS), COMPANY_ACTOR, VERIFIED, is_member=False
        )

        assert decision.can_view is True
        assert decision.show_anonymous is True

    def test_legacy_anonymous_flag_is_honoured_on_public_team(self):
        team = make_team(TeamVisibility.PUBLIC, is_anonymous=True)

        denied = decide_visibility(team, COMPANY_ACTOR, UNVERIFIED, is_member=False)
        allowed = decide_visibility(team, COMPANY_ACTOR, VERIFIED, is_member=False)

        assert denied.reason == REASON_VERIFICATION_REQUIRED
        assert allowed.can_view is True
        assert allowed.show_anonymous is True

    def test_selective_team_treated_as_anonymous(self):
        team = make_team(TeamVisibility.SELECTIVE)

        assert decide_visibility(team, COMPANY_ACTOR, UNVERIFIED, is_member=False).can_view is False
        verified = decide_visibility(team, COMPANY_ACTOR, VERIFIED, is_member=False)
        assert verified.can_view is True
        assert verified.show_anonymous is True

    def test_individual_cannot_view_anonymous_team(self):
        individual = ActorContext(user_id="someone", role=UserType.INDIVIDUAL)

        decision = decide_visibility(make_team(TeamVisibility.ANONYMOUS), individual, NO_COMPANY, is_member=False)

        assert decision.can_view is False
        assert decision.reason == REASON_VERIFICATION_REQUIRED

    @pytest.mark.parametrize(
        "visibility", [TeamVisibility.PUBLIC, TeamVisibility.ANONYMOUS, TeamVisibility.SELECTIVE]
    )
    def test_block_overrides_verification_for_every_tier(self, visibility):
        team = make_team(visibility, blocked=["c1"])

        decision = decide_visibility(team, COMPANY_ACTOR, VERIFIED, is_member=False)

        assert decision.can_view is False
        assert decision.reason == REASON_BLOCKED
        assert decision.is_blocked

    def test_unverified_blocked_company_gets_verification_reason_first(self):
        team = make_team(TeamVisibility.ANONYMOUS, blocked=["c1"])

        decision = decide_visibility(team, COMPANY_ACTOR, UNVERIFIED, is_member=False)

        assert decision.reason == REASON_VERIFICATION_REQUIRED

    def test_unverified_blocked_company_on_public_team_is_blocked(self):
        team = make_team(TeamVisibility.PUBLIC, blocked=["c1"])

        decision = decide_visibility(team, COMPANY_ACTOR, UNVERIFIED, is_member=False)

        assert decision.reason == REASON_BLOCKED

    def test_creator_member_and_admin_see_unmasked(self):
        team = make_team(TeamVisibility.ANONYMOUS, blocked=["c1"])
        creator = ActorContext(user_id="founder", role=UserType.INDIVIDUAL)
        admin = ActorContext(user_id="ops", role=UserType.ADMIN)
        teammate = ActorContext(user_id="mate", role=UserType.INDIVIDUAL)

        for actor, is_member in ((creator, False), (admin, False), (teammate, True)):
            decision = decide_visibility(team, actor, NO_COMPANY, is_member=is_member)
            assert decision.can_view is True
            assert decision.show_anonymous is False

    @pytest.mark.parametrize(
        "visibility,is_anonymous,blocked",
        [
            (TeamVisibility.PUBLIC, False, ()),
            (TeamVisibility.PUBLIC, True, ()),
            (TeamVisibility.ANONYMOUS, False, ()),
            (TeamVisibility.SELECTIVE, False, ()),
            (TeamVisibility.ANONYMOUS, False, ("c1",)),
            (TeamVisibility.PUBLIC, False, ("c1",)),
        ],
    )
    def test_verification_is_monotonic(self, visibility, is_anonymous, blocked):
        team = make_team(visibility, is_anonymous=is_anonymous, blocked=blocked)

        before = decide_visibility(team, COMPANY_ACTOR, UNVERIFIED, is_member=False)
        after = decide_visibility(team, COMPANY_ACTOR, VERIFIED, is_member=False)

        if before.can_view:
            assert after.can_view


class TestVerificationGate:
    """Tests for the store-backed gate."""

    @pytest.fixture(autouse=True)
    def setup_database(self):
        init_database("sqlite:///:memory:")
        yield
        close_database()

    def test_verified_company_user(self):
        add_company("c1", verified=True)
        add_user("recruiter", UserType.COMPANY, company_id="c1")

        with get_session() as session:
            result = VerificationGate(session).check("recruiter")

        assert result == VerificationResult(is_verified=True, company_id="c1")

    def test_unverified_company_still_reports_company_id(self):
        add_company("c1", verified=False)
        add_user("recruiter", UserType.COMPANY, company_id="c1")

        with get_session() as session:
            result = VerificationGate(session).check("recruiter")

        assert result.is_verified is False
        assert result.company_id == "c1"

    def test_user_without_company(self):
        add_user("loner")

        with get_session() as session:
            result = VerificationGate(session).check("loner")

        assert result.is_verified is False
        assert result.company_id is None


class TestVisibilityResolver:
    """Scenario: anonymous team T1 and company C1 moving from unverified to verified."""

    @pytest.fixture(autouse=True)
    def setup_database(self):
        init_database("sqlite:///:memory:")
        add_company("c1", verified=False)
        add_user("founder")
        add_user("recruiter", UserType.COMPANY, company_id="c1")
        add_team("t1", created_by="founder", visibility=TeamVisibility.ANONYMOUS, members=[member("founder", is_admin=True)])
        yield
        close_database()

    def _decide(self):
        with get_session() as session:
            team = TeamRepository(session).get("t1")
            return VisibilityResolver(session).can_view(team, "recruiter", UserType.COMPANY)

    def test_verification_then_block(self):
        assert self._decide().reason == REASON_VERIFICATION_REQUIRED

        with get_session() as session:
            CompanyRepository(session).set_verification_status("c1", VerificationStatus.VERIFIED)

        decision = self._decide()
        assert decision.can_view is True
        assert decision.show_anonymous is True

        with get_session() as session:
            TeamRepository(session).add_blocked_company("t1", "c1", BASE_TIME)

        assert self._decide().reason == REASON_BLOCKED

    def test_require_view_raises_matching_errors(self):
        actor = actor_for("recruiter", UserType.COMPANY, "c1")

        with get_session() as session:
            team = TeamRepository(session).get("t1")
            with pytest.raises(ForbiddenVerificationError):
                VisibilityResolver(session).require_view(team, actor)

            blocked = team.model_copy(update={"visibility": TeamVisibility.PUBLIC, "blocked_companies": ["c1"]})
            with pytest.raises(ForbiddenBlockedError):
                VisibilityResolver(session).require_view(blocked, actor)

    def test_member_lookup_uses_active_roster(self):
        with get_session() as session:
            team = TeamRepository(session).get("t1")
            decision = VisibilityResolver(session).can_view(team, "founder", UserType.INDIVIDUAL)

        assert decision.can_view is True
        assert decision.show_anonymous is False
