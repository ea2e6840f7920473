"""Tests for team masking helpers and the shared team projection."""

import pytest

from liftout.domain.models import MemberStatus, Team, TeamVisibility, User
from liftout.visibility import (
    UNDISCLOSED_LOCATION,
    VisibilityDecision,
    anonymous_team_name,
    generalize_location,
    generalize_title,
    mask_company_names,
    project_team,
)
from tests.helpers import member

MASKED = VisibilityDecision(can_view=True, show_anonymous=True)
FULL = VisibilityDecision(can_view=True, show_anonymous=False)


def make_team(location="New York, NY"):
    return Team(
        id="team-7f3a9c",
        name="Atlas Rates Desk",
        description="Rates traders currently at Goldman Sachs Group",
        industry="Finance",
        location=location,
        size=3,
        visibility=TeamVisibility.ANONYMOUS,
        created_by="alice",
        members=[
            member("alice", is_admin=True, title="Senior Software Engineer"),
            member("bob", title="VP of Sales"),
            member("carol", status=MemberStatus.INACTIVE),
        ],
    )


class TestAnonymousTeamName:
    def test_uses_last_six_characters_upper_cased(self):
        assert anonymous_team_name("team-7f3a9c") == "Anonymous Team #7F3A9C"

    def test_short_id(self):
        assert anonymous_team_name("t1") == "Anonymous Team #T1"


class TestGeneralizeLocation:
    """Tests for city to region mapping."""

    @pytest.mark.parametrize(
        "location,expected",
        [
            ("New York, NY", "Northeast US"),
            ("San Francisco", "West Coast US"),
            ("London, England", "United Kingdom"),
            ("Remote", "Remote"),
        ],
    )
    def test_known_cities(self, location, expected):
        assert generalize_location(location) == expected

    def test_unknown_city_returns_none(self):
        assert generalize_location("Reykjavik") is None

    def test_empty_location(self):
        assert generalize_location(None) is None
        assert generalize_location("") is None

    def test_region_is_idempotent(self):
        region = generalize_location("Boston, MA")

        assert generalize_location(region) == region
        assert generalize_location(UNDISCLOSED_LOCATION) == UNDISCLOSED_LOCATION

    def test_overrides_take_precedence(self):
        overrides = {"reykjavik": "Nordics", "new york": "NYC Metro"}

        assert generalize_location("Reykjavik", overrides) == "Nordics"
        assert generalize_location("New York, NY", overrides) == "NYC Metro"


class TestGeneralizeTitle:
    @pytest.mark.parametrize(
        "title,expected",
        [
            ("Senior Software Engineer", "Senior Engineer"),
            ("VP of Sales", "VP-level Sales"),
            ("Lead Product Designer", "Lead Designer"),
            ("Chief of Staff", "Professional"),
            ("Backend Developer", "Engineer"),
        ],
    )
    def test_titles(self, title, expected):
        assert generalize_title(title) == expected

    def test_idempotent(self):
        once = generalize_title("Sr. Software Engineer")

        assert generalize_title(once) == once

    def test_none(self):
        assert generalize_title(None) is None


class TestMaskCompanyNames:
    def test_masks_suffixed_company(self):
        masked = mask_company_names("Rates traders currently at Goldman Sachs Group")

        assert "Goldman" not in masked
        assert masked == "Rates traders currently at [Company]"

    def test_masks_at_company(self):
        assert mask_company_names("Engineers at Stripe") == "Engineers at [Company]"

    def test_idempotent(self):
        once = mask_company_names("Built payments at Acme Corp and Initech LLC")

        assert mask_company_names(once) == once
        assert "Acme" not in once
        assert "Initech" not in once

    def test_empty_passthrough(self):
        assert mask_company_names(None) is None
        assert mask_company_names("") == ""


class TestProjectTeam:
    """Tests for the full and masked team projections."""

    def test_full_projection_includes_identities(self):
        users = {
            "alice": User(id="alice", email="alice@example.com", first_name="Alice", last_name="Ng"),
        }

        view = project_team(make_team(), FULL, users)

        assert view["name"] == "Atlas Rates Desk"
        assert view["isAnonymized"] is False
        assert view["createdBy"] == "alice"
        assert view["memberCount"] == 2
        assert view["members"][0]["name"] == "Alice Ng"
        assert view["members"][0]["email"] == "alice@example.com"
        assert view["members"][1]["name"] is None

    def test_masked_projection_hides_identities(self):
        view = project_team(make_team(), MASKED)

        assert view["name"] == "Anonymous Team #7F3A9C"
        assert view["isAnonymized"] is True
        assert view["location"] == "Northeast US"
        assert view["description"] == "Rates traders currently at [Company]"
        assert "createdBy" not in view
        assert [m["name"] for m in view["members"]] == ["Team Member 1", "Team Member 2"]
        assert [m["title"] for m in view["members"]] == ["Senior Engineer", "VP-level Sales"]
        for entry in view["members"]:
            assert "userId" not in entry
            assert "email" not in entry

    def test_unmapped_location_becomes_undisclosed(self):
        view = project_team(make_team(location="Reykjavik"), MASKED)

        assert view["location"] == UNDISCLOSED_LOCATION

    def test_missing_location_stays_missing(self):
        view = project_team(make_team(location=None), MASKED)

        assert view["location"] is None

    def test_region_overrides_apply(self):
        view = project_team(make_team(location="Reykjavik"), MASKED, region_overrides={"reykjavik": "Nordics"})

        assert view["location"] == "Nordics"

    def test_refuses_hidden_decision(self):
        with pytest.raises(ValueError):
            project_team(make_team(), VisibilityDecision(can_view=False, reason="blocked"))
