"""Bulk team export, GDPR data export and account deletion.

Team exports go through the same TeamListFilter as search, so a team that is
hidden or masked in search is hidden or masked in the file too. The GDPR
export renders conversation counterparts exactly as the conversation view
does and hides the target of any EOI that was sent to an anonymous team.
"""

import csv
import io
import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

from liftout.applications.service import application_view
from liftout.conversations.projection import project_conversation
from liftout.domain.exceptions import ForbiddenRoleError, NotFoundError, ValidationFailedError
from liftout.domain.models import ActorContext, ExpressionOfInterest, SavedItemType, UserType
from liftout.interest.service import eoi_view
from liftout.logging import get_logger
from liftout.logging.context import log_context
from liftout.persistence.database import get_session
from liftout.persistence.repositories import (
    ApplicationRepository,
    CompanyUserRepository,
    ConversationRepository,
    InterestRepository,
    SavedItemRepository,
    TeamRepository,
    UserRepository,
)
from liftout.utils.timestamps import format_timestamp, utc_now
from liftout.visibility.filters import TeamListFilter

logger = get_logger(__name__, component="exports")

EXPORT_FORMATS = ("csv", "json")
EXPORT_SOURCES = ("saved", "search")
DELETE_CONFIRMATION = "DELETE"
DELETED_MESSAGE = "[Message from deleted user]"
DELETED_COVER_LETTER = "[Application from deleted user]"
DELETED_EMAIL_DOMAIN = "deleted.liftout.io"

CSV_HEADERS = [
    "Team ID",
    "Team Name",
    "Industry",
    "Location",
    "Team Size",
    "Member Count",
    "Visibility",
    "Anonymized",
]


@dataclass(frozen=True)
class ExportFile:
    content_type: str
    filename: str
    content: str


def _teams_csv(rows: List[Dict[str, Any]]) -> str:
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for team in rows:
        writer.writerow(
            [
                team["id"],
                team["name"],
                team["industry"] or "",
                team["location"] or "",
                team["size"],
                team["memberCount"],
                team["visibility"],
                "yes" if team["isAnonymized"] else "no",
            ]
        )
    return output.getvalue()


def _redacted_eoi(eoi: ExpressionOfInterest, now) -> Dict[str, Any]:
    view = eoi_view(eoi, now)
    if eoi.target_was_anonymous:
        view["toId"] = None
    return view


class ExportService:
    def __init__(
        self,
        session_factory: Callable = get_session,
        clock: Callable = utc_now,
        region_overrides: Optional[Mapping[str, str]] = None,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.region_overrides = dict(region_overrides or {})

    def export_teams(
        self,
        actor: ActorContext,
        format: str = "csv",
        source: str = "saved",
        team_ids: Optional[List[str]] = None,
    ) -> ExportFile:
        """Export saved teams, or the given team ids, as CSV or JSON.

        Raises:
            ForbiddenRoleError: Actor is not a company user
            ValidationFailedError: Unknown format/source, or no team ids for a search export
            NotFoundError: Nothing visible to export
        """
        if actor.role != UserType.COMPANY:
            raise ForbiddenRoleError("Only company users can export teams")
        if format not in EXPORT_FORMATS:
            raise ValidationFailedError(f"format must be one of: {', '.join(EXPORT_FORMATS)}")
        if source not in EXPORT_SOURCES:
            raise ValidationFailedError(f"source must be one of: {', '.join(EXPORT_SOURCES)}")

        with self.session_factory() as session:
            if source == "saved":
                saved = SavedItemRepository(session).list_for_user(actor.user_id, SavedItemType.TEAM)
                ids = [s.item_id for s in saved]
            elif team_ids:
                ids = list(team_ids)
            else:
                raise ValidationFailedError("No teams specified for export")

            teams = TeamRepository(session).get_many(ids)
            rows = TeamListFilter(session, region_overrides=self.region_overrides).apply(teams, actor)

        if not rows:
            raise NotFoundError("No teams found to export")

        stamp = self.clock().strftime("%Y-%m-%d")
        logger.info(
            f"Exported {len(rows)} teams as {format}",
            extra={"event": "export.teams", "actor_id": actor.user_id, "team_count": len(rows)},
        )
        if format == "json":
            return ExportFile("application/json", f"teams-export-{stamp}.json", json.dumps(rows, indent=2))
        return ExportFile("text/csv", f"teams-export-{stamp}.csv", _teams_csv(rows))

    def export_user_data(self, actor: ActorContext) -> Dict[str, Any]:
        """Everything stored about the actor, with other people's identities redacted."""
        now = self.clock()
        with self.session_factory() as session:
            users = UserRepository(session)
            user = users.get(actor.user_id)
            if user is None or user.is_deleted:
                raise NotFoundError("User not found")

            teams = TeamRepository(session).list_for_member(actor.user_id)
            memberships = [
                {"teamId": t.id, "teamName": t.name, **_member_fields(t, actor.user_id)}
                for t in teams
            ]
            team_ids = [t.id for t in teams if t.is_active_member(actor.user_id)]

            company = CompanyUserRepository(session).get_by_user(actor.user_id)
            sender_ids = [*team_ids, *([company.company_id] if company else [])]
            eois = InterestRepository(session).list_from(sender_ids)
            applications = ApplicationRepository(session).list_for_teams(team_ids)

            conversations_repo = ConversationRepository(session)
            conversations = conversations_repo.list_for_user(actor.user_id, include_left=True)
            participants = users.get_many(p.user_id for c in conversations for p in c.participants)
            messages = conversations_repo.list_messages_by_sender(actor.user_id)

        logger.info("GDPR export generated", extra={"event": "gdpr.exported", "actor_id": actor.user_id})
        return {
            "exportedAt": format_timestamp(now),
            "user": {
                "id": user.id,
                "email": user.email,
                "firstName": user.first_name,
                "lastName": user.last_name,
                "userType": user.user_type.value,
                "createdAt": format_timestamp(user.created_at),
            },
            "company": {"companyId": company.company_id, "role": company.role.value} if company else None,
            "teamMemberships": memberships,
            "applications": [application_view(a) for a in applications],
            "expressionsOfInterest": [_redacted_eoi(e, now) for e in eois],
            "conversations": [project_conversation(c, actor.user_id, participants).to_dict() for c in conversations],
            "messages": [
                {"conversationId": m.conversation_id, "content": m.content, "sentAt": format_timestamp(m.sent_at)}
                for m in messages
            ],
        }

    def delete_account(self, actor: ActorContext, confirm_text: str) -> Dict[str, Any]:
        """Soft-delete the actor and scrub what they wrote, in one transaction.

        Raises:
            ValidationFailedError: confirm_text is not "DELETE"
            NotFoundError: User does not exist or is already deleted
        """
        if confirm_text != DELETE_CONFIRMATION:
            raise ValidationFailedError("Invalid confirmation")

        now = self.clock()
        user_id = actor.user_id
        with log_context(actor_id=user_id):
            with self.session_factory() as session:
                users = UserRepository(session)
                user = users.get(user_id)
                if user is None or user.is_deleted:
                    raise NotFoundError("User not found")

                conversations = ConversationRepository(session)
                redacted_messages = conversations.redact_messages_by_sender(user_id, DELETED_MESSAGE)
                conversations.mark_left(user_id, now)
                redacted_applications = ApplicationRepository(session).redact_cover_letters(
                    user_id, DELETED_COVER_LETTER
                )
                TeamRepository(session).remove_member_everywhere(user_id)
                CompanyUserRepository(session).delete_by_user(user_id)
                users.soft_delete(user_id, f"deleted-{user_id}@{DELETED_EMAIL_DOMAIN}", now)

            logger.info(
                "User account deleted",
                extra={
                    "event": "gdpr.account_deleted",
                    "redacted_messages": redacted_messages,
                    "redacted_applications": redacted_applications,
                },
            )
        return {"success": True, "deletedAt": format_timestamp(now)}


def _member_fields(team, user_id: str) -> Dict[str, Any]:
    for member in team.members:
        if member.user_id == user_id:
            return {
                "role": member.role,
                "title": member.title,
                "status": member.status.value,
                "isAdmin": member.is_admin,
                "isLead": member.is_lead,
                "joinedAt": format_timestamp(member.joined_at),
            }
    return {}
