"""Tests for expressions of interest: creation, responses, listing and expiry."""

from unittest.mock import Mock

import pytest

from liftout.config.models import InterestConfig
from liftout.domain.exceptions import (
    DuplicatePendingError,
    ForbiddenBlockedError,
    ForbiddenRoleError,
    ForbiddenVerificationError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationFailedError,
)
from liftout.domain.models import TeamVisibility, UserType
from liftout.interest import InterestService
from liftout.notifications.models import NotificationType
from liftout.persistence import close_database, init_database
from tests.helpers import (
    FixedClock,
    actor_for,
    add_company,
    add_opportunity,
    add_team,
    add_user,
    member,
    set_team_visibility,
)

FOUNDER = actor_for("founder")
LEAD = actor_for("lead")
MATE = actor_for("mate")
RECRUITER = actor_for("recruiter", UserType.COMPANY, "c1")
ROOKIE = actor_for("rookie", UserType.COMPANY, "c2")
OPS = actor_for("ops", UserType.ADMIN)


@pytest.fixture(autouse=True)
def setup_database():
    init_database("sqlite:///:memory:")
    add_company("c1", "Verified Capital", verified=True)
    add_company("c2", "Fresh Ventures", verified=False)
    add_user("founder")
    add_user("lead")
    add_user("mate")
    add_user("recruiter", UserType.COMPANY, company_id="c1")
    add_user("rookie", UserType.COMPANY, company_id="c2")
    add_team(
        "t-anon",
        created_by="founder",
        name="Atlas Desk",
        visibility=TeamVisibility.ANONYMOUS,
        members=[member("founder", is_admin=True), member("mate")],
    )
    add_team("t-bravo", created_by="lead", name="Bravo Desk", members=[member("lead", is_lead=True)])
    add_team(
        "t-block",
        created_by="founder",
        visibility=TeamVisibility.ANONYMOUS,
        blocked=["c1"],
        members=[member("founder", is_admin=True)],
    )
    add_opportunity("o1", "c1", title="Acquire a rates desk")
    yield
    close_database()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def dispatcher():
    return Mock()


@pytest.fixture
def service(dispatcher, clock):
    return InterestService(dispatcher, InterestConfig(), clock=clock)


def company_to_anon(service, **kwargs):
    return service.create_eoi(RECRUITER, "company", "team", "t-anon", message="Let's talk", **kwargs)


class TestCreateEoi:
    """Tests for EOI creation."""

    def test_company_to_anonymous_team(self, service, dispatcher):
        eoi = company_to_anon(service, interest_level="high")

        assert eoi["status"] == "pending"
        assert eoi["fromType"] == "company"
        assert eoi["fromId"] == "c1"
        assert eoi["interestLevel"] == "high"
        assert eoi["metadata"] == {"isAnonymous": True}
        assert eoi["createdAt"] == "2025-03-01T12:00:00Z"
        assert eoi["expiresAt"] == "2025-03-31T12:00:00Z"

        dispatcher.notify.assert_called_once()
        recipient, kind, payload = dispatcher.notify.call_args[0]
        assert recipient == "founder"
        assert kind == NotificationType.EOI_RECEIVED
        assert payload["sender_name"] == "Verified Capital"
        assert payload["target_name"] == "Atlas Desk"

    def test_expiry_window_is_configurable(self, dispatcher, clock):
        service = InterestService(dispatcher, InterestConfig(expiry_days=7), clock=clock)

        eoi = company_to_anon(service)

        assert eoi["expiresAt"] == "2025-03-08T12:00:00Z"

    def test_unverified_company_is_refused(self, service, dispatcher):
        with pytest.raises(ForbiddenVerificationError):
            service.create_eoi(ROOKIE, "company", "team", "t-anon")

        dispatcher.notify.assert_not_called()

    def test_blocked_company_is_refused(self, service):
        with pytest.raises(ForbiddenBlockedError):
            service.create_eoi(RECRUITER, "company", "team", "t-block")

    def test_second_pending_is_duplicate(self, service):
        company_to_anon(service)

        with pytest.raises(DuplicatePendingError):
            company_to_anon(service)

    def test_team_to_opportunity_notifies_company_users(self, service, dispatcher):
        eoi = service.create_eoi(LEAD, "team", "opportunity", "o1")

        assert eoi["fromId"] == "t-bravo"
        assert eoi["metadata"] == {"isAnonymous": False}
        recipient, _, payload = dispatcher.notify.call_args[0]
        assert recipient == "recruiter"
        assert payload["sender_name"] == "Bravo Desk"
        assert payload["target_name"] == "Acquire a rates desk"

    def test_anonymous_sender_team_is_masked(self, service, dispatcher):
        service.create_eoi(FOUNDER, "team", "opportunity", "o1", from_id="t-anon")

        payload = dispatcher.notify.call_args[0][2]
        assert payload["sender_name"] == "Anonymous Team #T-ANON"
        assert "Atlas" not in str(payload)

    def test_team_sender_must_manage_the_team(self, service):
        with pytest.raises(ForbiddenRoleError):
            service.create_eoi(MATE, "team", "opportunity", "o1")
        with pytest.raises(ForbiddenRoleError):
            service.create_eoi(LEAD, "team", "opportunity", "o1", from_id="t-anon")

    def test_company_sender_must_belong_to_company(self, service):
        with pytest.raises(ForbiddenRoleError):
            service.create_eoi(MATE, "company", "team", "t-bravo")
        with pytest.raises(ForbiddenRoleError):
            service.create_eoi(RECRUITER, "company", "team", "t-bravo", from_id="c2")

    @pytest.mark.parametrize(
        "from_type,to_type,level",
        [("person", "team", None), ("company", "galaxy", None), ("company", "team", "extreme")],
    )
    def test_invalid_enums(self, service, from_type, to_type, level):
        with pytest.raises(ValidationFailedError):
            service.create_eoi(RECRUITER, from_type, to_type, "t-bravo", interest_level=level)

    def test_unknown_target(self, service):
        with pytest.raises(NotFoundError):
            service.create_eoi(RECRUITER, "company", "team", "missing")
        with pytest.raises(NotFoundError):
            service.create_eoi(LEAD, "team", "opportunity", "missing")

    def test_recipient_opt_out(self, service, dispatcher):
        add_user("quiet", notify_on_interest=False)
        add_team("t-quiet", created_by="quiet", members=[member("quiet", is_admin=True)])

        service.create_eoi(RECRUITER, "company", "team", "t-quiet")

        dispatcher.notify.assert_not_called()


class TestRespondEoi:
    """Tests for accept/decline by the receiving side."""

    def test_accept_notifies_sender_with_masked_target(self, service, dispatcher, clock):
        eoi = company_to_anon(service)
        dispatcher.reset_mock()
        clock.advance(days=2)

        result = service.respond_eoi(FOUNDER, eoi["id"], "accepted")

        assert result["status"] == "accepted"
        assert result["respondedAt"] == "2025-03-03T12:00:00Z"
        recipient, kind, payload = dispatcher.notify.call_args[0]
        assert recipient == "recruiter"
        assert kind == NotificationType.EOI_RESPONDED
        assert payload["status"] == "accepted"
        assert payload["target_name"] == "Anonymous Team #T-ANON"

    def test_only_receiver_may_respond(self, service):
        eoi = company_to_anon(service)

        with pytest.raises(ForbiddenRoleError):
            service.respond_eoi(RECRUITER, eoi["id"], "accepted")
        with pytest.raises(ForbiddenRoleError):
            service.respond_eoi(MATE, eoi["id"], "accepted")

    def test_platform_admin_may_respond(self, service):
        eoi = company_to_anon(service)

        assert service.respond_eoi(OPS, eoi["id"], "declined")["status"] == "declined"

    def test_company_user_responds_for_opportunity(self, service):
        eoi = service.create_eoi(LEAD, "team", "opportunity", "o1")

        assert service.respond_eoi(RECRUITER, eoi["id"], "declined")["status"] == "declined"

    def test_terminal_eoi_is_immutable(self, service):
        eoi = company_to_anon(service)
        service.respond_eoi(FOUNDER, eoi["id"], "declined")

        with pytest.raises(InvalidStateTransitionError):
            service.respond_eoi(FOUNDER, eoi["id"], "accepted")

    def test_lazily_expired_eoi_cannot_be_accepted(self, service, clock):
        eoi = company_to_anon(service)
        clock.advance(days=30)

        with pytest.raises(InvalidStateTransitionError):
            service.respond_eoi(FOUNDER, eoi["id"], "accepted")

    def test_invalid_response(self, service):
        eoi = company_to_anon(service)

        with pytest.raises(ValidationFailedError):
            service.respond_eoi(FOUNDER, eoi["id"], "maybe")

    def test_unknown_eoi(self, service):
        with pytest.raises(NotFoundError):
            service.respond_eoi(FOUNDER, "missing", "accepted")

    def test_declined_pair_can_be_sent_again(self, service):
        eoi = company_to_anon(service)
        service.respond_eoi(FOUNDER, eoi["id"], "declined")

        again = company_to_anon(service)

        assert again["id"] != eoi["id"]
        assert again["status"] == "pending"


class TestListEois:
    def test_sent_and_received(self, service):
        to_team = company_to_anon(service)
        to_opportunity = service.create_eoi(LEAD, "team", "opportunity", "o1")

        assert [e["id"] for e in service.list_eois(RECRUITER, "sent")] == [to_team["id"]]
        assert [e["id"] for e in service.list_eois(RECRUITER, "received")] == [to_opportunity["id"]]
        assert [e["id"] for e in service.list_eois(FOUNDER, "received")] == [to_team["id"]]
        assert [e["id"] for e in service.list_eois(LEAD, "sent")] == [to_opportunity["id"]]

    def test_pending_past_expiry_reads_as_expired(self, service, clock):
        company_to_anon(service)
        clock.advance(days=30)

        listed = service.list_eois(FOUNDER, "received")

        assert listed[0]["status"] == "expired"

    def test_anonymity_snapshot_survives_visibility_change(self, service):
        company_to_anon(service)

        set_team_visibility("t-anon", TeamVisibility.PUBLIC)

        assert service.list_eois(RECRUITER, "sent")[0]["metadata"] == {"isAnonymous": True}

    def test_invalid_direction(self, service):
        with pytest.raises(ValidationFailedError):
            service.list_eois(FOUNDER, "sideways")


class TestExpireStale:
    """Tests for the background sweep."""

    def test_sweep_flips_overdue_pending(self, service, clock):
        company_to_anon(service)
        service.create_eoi(LEAD, "team", "opportunity", "o1")

        assert service.expire_stale() == 0

        clock.advance(days=31)
        assert service.expire_stale() == 2
        assert service.expire_stale() == 0

    def test_sweep_leaves_answered_eois_alone(self, service, clock):
        eoi = company_to_anon(service)
        service.respond_eoi(FOUNDER, eoi["id"], "accepted")
        clock.advance(days=31)

        assert service.expire_stale() == 0
        assert service.list_eois(FOUNDER, "received")[0]["status"] == "accepted"

    def test_resend_after_lazy_expiry(self, service, clock):
        first = company_to_anon(service)
        clock.advance(days=30)

        second = company_to_anon(service)

        statuses = {e["id"]: e["status"] for e in service.list_eois(RECRUITER, "sent")}
        assert statuses == {first["id"]: "expired", second["id"]: "pending"}


class TestOverrideEoiStatus:
    def test_admin_override(self, service):
        eoi = company_to_anon(service)
        service.respond_eoi(FOUNDER, eoi["id"], "declined")

        result = service.override_eoi_status(OPS, eoi["id"], "pending")

        assert result["status"] == "pending"

    def test_requires_platform_admin(self, service):
        eoi = company_to_anon(service)

        with pytest.raises(ForbiddenRoleError):
            service.override_eoi_status(FOUNDER, eoi["id"], "accepted")

    def test_override_cannot_create_second_pending(self, service):
        first = company_to_anon(service)
        service.respond_eoi(FOUNDER, first["id"], "declined")
        company_to_anon(service)

        with pytest.raises(DuplicatePendingError):
            service.override_eoi_status(OPS, first["id"], "pending")

    def test_unknown_status(self, service):
        eoi = company_to_anon(service)

        with pytest.raises(ValidationFailedError):
            service.override_eoi_status(OPS, eoi["id"], "archived")
