"""Tests for team exports, GDPR export and account deletion."""

import csv
import io
import json
from datetime import timedelta

import pytest

from liftout.applications import ApplicationService
from liftout.conversations import ConversationService
from liftout.domain.exceptions import ForbiddenRoleError, NotFoundError, ValidationFailedError
from liftout.domain.models import TeamVisibility, UserType
from liftout.exports import DELETED_COVER_LETTER, DELETED_MESSAGE, ExportService
from liftout.interest import InterestService
from liftout.persistence import UserRepository, close_database, get_session, init_database
from liftout.visibility import VerificationGate
from tests.helpers import (
    BASE_TIME,
    FixedClock,
    actor_for,
    add_company,
    add_opportunity,
    add_saved_team,
    add_team,
    add_user,
    member,
)

FOUNDER = actor_for("founder")
RECRUITER = actor_for("recruiter", UserType.COMPANY, "c1")


@pytest.fixture(autouse=True)
def setup_database():
    init_database("sqlite:///:memory:")
    add_company("c1", "Verified Capital", verified=True)
    add_user("founder", first_name="Fiona", last_name="Founder")
    add_user("recruiter", UserType.COMPANY, first_name="Rita", company_id="c1")
    roster = [member("founder", is_admin=True)]
    add_team("t-open", created_by="founder", name="Open Desk", members=roster)
    add_team("t-secret", created_by="founder", name="Atlas Desk", visibility=TeamVisibility.ANONYMOUS, members=roster)
    add_team("t-blocker", created_by="founder", name="Blocking Desk", blocked=["c1"], members=roster)
    add_opportunity("o1", "c1")
    for offset, team_id in enumerate(("t-open", "t-secret", "t-blocker")):
        add_saved_team("recruiter", team_id, created_at=BASE_TIME + timedelta(minutes=offset))
    yield
    close_database()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def service(clock):
    return ExportService(clock=clock)


class TestExportTeams:
    """Tests for saved and search team exports."""

    def test_csv_of_saved_teams(self, service):
        exported = service.export_teams(RECRUITER)

        assert exported.content_type == "text/csv"
        assert exported.filename == "teams-export-2025-03-01.csv"

        rows = list(csv.reader(io.StringIO(exported.content)))
        assert rows[0][:3] == ["Team ID", "Team Name", "Industry"]
        assert [r[0] for r in rows[1:]] == ["t-open", "t-secret"]
        assert rows[1][1] == "Open Desk"
        assert rows[2][1] == "Anonymous Team #SECRET"
        assert rows[2][3] == "Northeast US"
        assert rows[2][-1] == "yes"
        assert "Atlas" not in exported.content
        assert "Blocking" not in exported.content

    def test_json_matches_search_projection(self, service):
        exported = service.export_teams(RECRUITER, format="json")

        teams = json.loads(exported.content)
        assert exported.content_type == "application/json"
        assert exported.filename.endswith(".json")
        assert [t["id"] for t in teams] == ["t-open", "t-secret"]
        assert teams[1]["isAnonymized"] is True
        assert "userId" not in teams[1]["members"][0]

    def test_explicit_team_ids(self, service):
        exported = service.export_teams(RECRUITER, source="search", team_ids=["t-blocker", "t-secret"])

        rows = list(csv.reader(io.StringIO(exported.content)))
        assert [r[0] for r in rows[1:]] == ["t-secret"]

    def test_search_export_needs_ids(self, service):
        with pytest.raises(ValidationFailedError):
            service.export_teams(RECRUITER, source="search")

    def test_nothing_visible(self, service):
        with pytest.raises(NotFoundError):
            service.export_teams(RECRUITER, source="search", team_ids=["t-blocker"])

    def test_company_users_only(self, service):
        with pytest.raises(ForbiddenRoleError):
            service.export_teams(FOUNDER)

    @pytest.mark.parametrize("kwargs", [{"format": "xlsx"}, {"source": "everything"}])
    def test_bad_parameters(self, service, kwargs):
        with pytest.raises(ValidationFailedError):
            service.export_teams(RECRUITER, **kwargs)


class TestExportUserData:
    def test_export_hides_anonymous_counterparts(self, service, clock):
        InterestService(clock=clock).create_eoi(RECRUITER, "company", "team", "t-secret")
        conversations = ConversationService(clock=clock)
        view = conversations.create_conversation(RECRUITER, ["founder"], team_id="t-secret", accept_nda=True)
        conversations.send_message(view.id, RECRUITER, "Hello")

        data = service.export_user_data(RECRUITER)

        assert data["user"]["email"] == "recruiter@example.com"
        assert data["company"] == {"companyId": "c1", "role": "admin"}
        assert data["expressionsOfInterest"][0]["toId"] is None
        assert data["expressionsOfInterest"][0]["metadata"] == {"isAnonymous": True}
        participants = data["conversations"][0]["participants"]
        assert [p["firstName"] for p in participants] == ["Rita", "Anonymous"]
        assert data["messages"] == [
            {"conversationId": view.id, "content": "Hello", "sentAt": "2025-03-01T12:00:00Z"}
        ]
        assert "Fiona" not in json.dumps(data)

    def test_export_lists_memberships_and_applications(self, service, clock):
        ApplicationService(clock=clock).create_application(FOUNDER, "t-open", "o1", "Hire us")

        data = service.export_user_data(FOUNDER)

        assert sorted(m["teamId"] for m in data["teamMemberships"]) == ["t-blocker", "t-open", "t-secret"]
        assert data["teamMemberships"][0]["isAdmin"] is True
        assert data["applications"][0]["coverLetter"] == "Hire us"
        assert data["company"] is None


class TestDeleteAccount:
    """Tests for GDPR account deletion."""

    def test_wrong_confirmation(self, service):
        with pytest.raises(ValidationFailedError):
            service.delete_account(FOUNDER, "delete")

    def test_deletion_scrubs_authored_content(self, service, clock):
        conversations = ConversationService(clock=clock)
        view = conversations.create_conversation(FOUNDER, ["recruiter"], team_id="t-open")
        conversations.send_message(view.id, FOUNDER, "Our P&L is attached")
        applications = ApplicationService(clock=clock)
        application = applications.create_application(FOUNDER, "t-open", "o1", "Hire us")

        result = service.delete_account(FOUNDER, "DELETE")

        assert result["success"] is True
        assert result["deletedAt"] == "2025-03-01T12:00:00Z"

        messages = conversations.list_messages(view.id, RECRUITER)
        assert messages[0]["content"] == DELETED_MESSAGE
        remaining = conversations.get_conversation(view.id, RECRUITER)
        assert [p.user_id for p in remaining.participants] == ["recruiter"]

        listed = applications.list_for_opportunity(RECRUITER, "o1")
        assert listed[0]["id"] == application["id"]
        assert listed[0]["coverLetter"] == DELETED_COVER_LETTER
        assert listed[0]["status"] == "submitted"

        with get_session() as session:
            user = UserRepository(session).get("founder")
        assert user.is_deleted
        assert user.email == "deleted-founder@deleted.liftout.io"
        assert user.first_name == "Deleted"

    def test_company_membership_is_removed(self, service):
        service.delete_account(RECRUITER, "DELETE")

        with get_session() as session:
            result = VerificationGate(session).check("recruiter")

        assert result.company_id is None

    def test_deleted_account_cannot_be_exported_or_deleted_again(self, service):
        service.delete_account(FOUNDER, "DELETE")

        with pytest.raises(NotFoundError):
            service.export_user_data(FOUNDER)
        with pytest.raises(NotFoundError):
            service.delete_account(FOUNDER, "DELETE")
