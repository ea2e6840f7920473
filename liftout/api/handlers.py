"""REST-shaped entry points.

Each handler takes the caller's user id (as established by whatever
authenticates the request) plus the request parameters, and returns an
``ApiResponse``. Engine errors become ``{"error": kind, "message": ...}``
bodies with the error's status; persistence failures become
``internal_error`` and are logged with the operation name and entity ids.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from liftout.applications.service import ApplicationService
from liftout.config.models import AppConfig
from liftout.conversations.service import ConversationService
from liftout.domain.exceptions import EngineError, InternalError, ValidationFailedError
from liftout.domain.models import ActorContext
from liftout.exports.service import ExportService
from liftout.identity import IdentityProvider, StoreIdentityProvider
from liftout.interest.service import InterestService
from liftout.logging import get_logger
from liftout.logging.context import log_context
from liftout.notifications.dispatcher import NotificationDispatcher
from liftout.persistence.database import get_session
from liftout.persistence.exceptions import PersistenceError
from liftout.search.service import TeamSearchService
from liftout.teams.service import TeamService

logger = get_logger(__name__, component="api")


@dataclass
class ApiResponse:
    status: int
    body: Any = None
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def error_kind(self) -> Optional[str]:
        if isinstance(self.body, dict) and not self.ok:
            return self.body.get("error")
        return None


class ApiHandlers:
    """One method per route; services are injected so tests can swap them."""

    def __init__(
        self,
        conversations: ConversationService,
        interests: InterestService,
        applications: ApplicationService,
        teams: TeamService,
        search: TeamSearchService,
        exports: ExportService,
        identity: Optional[IdentityProvider] = None,
        session_factory: Callable = get_session,
    ):
        self.conversations = conversations
        self.interests = interests
        self.applications = applications
        self.teams = teams
        self.search = search
        self.exports = exports
        self.identity = identity
        self.session_factory = session_factory

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        dispatcher: Optional[NotificationDispatcher] = None,
        identity: Optional[IdentityProvider] = None,
        session_factory: Callable = get_session,
    ) -> "ApiHandlers":
        regions = config.anonymization.region_overrides
        return cls(
            conversations=ConversationService(dispatcher, session_factory=session_factory),
            interests=InterestService(dispatcher, config.interest, session_factory=session_factory),
            applications=ApplicationService(dispatcher, session_factory=session_factory),
            teams=TeamService(session_factory=session_factory, region_overrides=regions),
            search=TeamSearchService(session_factory=session_factory, region_overrides=regions),
            exports=ExportService(session_factory=session_factory, region_overrides=regions),
            identity=identity,
            session_factory=session_factory,
        )

    # Expressions of interest

    def post_eoi(self, user_id: Optional[str], body: Dict[str, Any]) -> ApiResponse:
        return self._run(
            "post_eoi",
            user_id,
            lambda actor: self.interests.create_eoi(
                actor,
                from_type=body.get("fromType"),
                to_type=body.get("toType"),
                to_id=body.get("toId"),
                message=body.get("message"),
                interest_level=body.get("interestLevel"),
                from_id=body.get("fromId"),
            ),
            status=201,
            to_id=body.get("toId"),
        )

    def post_eoi_response(self, user_id: Optional[str], eoi_id: str, body: Dict[str, Any]) -> ApiResponse:
        return self._run(
            "post_eoi_response",
            user_id,
            lambda actor: self.interests.respond_eoi(actor, eoi_id, body.get("response")),
            eoi_id=eoi_id,
        )

    def get_eois(self, user_id: Optional[str], direction: str = "received") -> ApiResponse:
        return self._run(
            "get_eois",
            user_id,
            lambda actor: {"expressionsOfInterest": self.interests.list_eois(actor, direction)},
        )

    # Conversations

    def post_conversation(self, user_id: Optional[str], body: Dict[str, Any]) -> ApiResponse:
        return self._run(
            "post_conversation",
            user_id,
            lambda actor: self.conversations.create_conversation(
                actor,
                participant_ids=body.get("participantIds") or [],
                team_id=body.get("teamId"),
                opportunity_id=body.get("opportunityId"),
                subject=body.get("subject"),
                accept_nda=bool(body.get("acceptNda", False)),
                initial_message=body.get("initialMessage"),
            ).to_dict(),
            status=201,
            team_id=body.get("teamId"),
        )

    def post_conversation_nda(self, user_id: Optional[str], conversation_id: str) -> ApiResponse:
        return self._run(
            "post_conversation_nda",
            user_id,
            lambda actor: self.conversations.accept_nda(conversation_id, actor).to_dict(),
            conversation_id=conversation_id,
        )

    def get_conversation(self, user_id: Optional[str], conversation_id: str) -> ApiResponse:
        def load(actor: ActorContext) -> Dict[str, Any]:
            view = self.conversations.get_conversation(conversation_id, actor).to_dict()
            view["messages"] = self.conversations.list_messages(conversation_id, actor)
            return view

        return self._run("get_conversation", user_id, load, conversation_id=conversation_id)

    def post_message(self, user_id: Optional[str], conversation_id: str, body: Dict[str, Any]) -> ApiResponse:
        return self._run(
            "post_message",
            user_id,
            lambda actor: self.conversations.send_message(conversation_id, actor, body.get("content")),
            status=201,
            conversation_id=conversation_id,
        )

    # Applications and opportunities

    def post_application(self, user_id: Optional[str], body: Dict[str, Any]) -> ApiResponse:
        return self._run(
            "post_application",
            user_id,
            lambda actor: self.applications.create_application(
                actor, body.get("teamId"), body.get("opportunityId"), body.get("coverLetter")
            ),
            status=201,
            team_id=body.get("teamId"),
            opportunity_id=body.get("opportunityId"),
        )

    def patch_application_status(
        self, user_id: Optional[str], application_id: str, body: Dict[str, Any]
    ) -> ApiResponse:
        return self._run(
            "patch_application_status",
            user_id,
            lambda actor: self.applications.update_status(
                actor, application_id, body.get("status"), body.get("rejectionReason")
            ),
            application_id=application_id,
        )

    def delete_application(self, user_id: Optional[str], application_id: str) -> ApiResponse:
        return self._run(
            "delete_application",
            user_id,
            lambda actor: self.applications.withdraw_application(actor, application_id),
            status=204,
            application_id=application_id,
        )

    def post_opportunity_close(
        self, user_id: Optional[str], opportunity_id: str, body: Optional[Dict[str, Any]] = None
    ) -> ApiResponse:
        body = body or {}
        return self._run(
            "post_opportunity_close",
            user_id,
            lambda actor: self.applications.close_opportunity(
                actor, opportunity_id, body.get("selectedTeamId"), body.get("reason")
            ),
            opportunity_id=opportunity_id,
        )

    def delete_opportunity_close(self, user_id: Optional[str], opportunity_id: str) -> ApiResponse:
        return self._run(
            "delete_opportunity_close",
            user_id,
            lambda actor: self.applications.reopen_opportunity(actor, opportunity_id),
            opportunity_id=opportunity_id,
        )

    # Teams

    def get_team(self, user_id: Optional[str], team_id: str) -> ApiResponse:
        return self._run("get_team", user_id, lambda actor: self.teams.get_team(actor, team_id), team_id=team_id)

    def get_team_search(self, user_id: Optional[str], params: Optional[Dict[str, Any]] = None) -> ApiResponse:
        params = params or {}
        return self._run(
            "get_team_search",
            user_id,
            lambda actor: self.search.search(
                actor,
                query=params.get("q"),
                industry=params.get("industry"),
                location=params.get("location"),
                limit=_int_param(params, "limit", 20),
                offset=_int_param(params, "offset", 0),
            ),
        )

    def get_team_export(self, user_id: Optional[str], params: Optional[Dict[str, Any]] = None) -> ApiResponse:
        params = params or {}
        team_ids: List[str] = [t for t in (params.get("teamIds") or "").split(",") if t]

        def export(actor: ActorContext):
            return self.exports.export_teams(
                actor,
                format=params.get("format", "csv"),
                source=params.get("source", "saved"),
                team_ids=team_ids,
            )

        response = self._run("get_team_export", user_id, export)
        if response.ok:
            exported = response.body
            response.headers = {
                "Content-Type": exported.content_type,
                "Content-Disposition": f'attachment; filename="{exported.filename}"',
            }
            response.body = exported.content
        return response

    def get_team_blocked_companies(self, user_id: Optional[str], team_id: str) -> ApiResponse:
        def blocked(actor: ActorContext) -> Dict[str, Any]:
            companies = self.teams.list_blocked_companies(actor, team_id)
            return {"blockedCompanies": companies, "count": len(companies)}

        return self._run("get_team_blocked_companies", user_id, blocked, team_id=team_id)

    def post_team_blocked_company(self, user_id: Optional[str], team_id: str, body: Dict[str, Any]) -> ApiResponse:
        return self._run(
            "post_team_blocked_company",
            user_id,
            lambda actor: {"blockedCompany": self.teams.block_company(actor, team_id, body.get("companyId"))},
            team_id=team_id,
        )

    def delete_team_blocked_company(self, user_id: Optional[str], team_id: str, company_id: str) -> ApiResponse:
        return self._run(
            "delete_team_blocked_company",
            user_id,
            lambda actor: self.teams.unblock_company(actor, team_id, company_id),
            status=204,
            team_id=team_id,
        )

    # GDPR

    def post_gdpr_export(self, user_id: Optional[str]) -> ApiResponse:
        return self._run("post_gdpr_export", user_id, self.exports.export_user_data)

    def post_gdpr_delete(self, user_id: Optional[str], body: Dict[str, Any]) -> ApiResponse:
        return self._run(
            "post_gdpr_delete",
            user_id,
            lambda actor: self.exports.delete_account(actor, body.get("confirmText")),
        )

    def _resolve(self, user_id: Optional[str]) -> ActorContext:
        if self.identity is not None:
            return self.identity.resolve(user_id)
        with self.session_factory() as session:
            return StoreIdentityProvider(session).resolve(user_id)

    def _run(
        self,
        operation: str,
        user_id: Optional[str],
        action: Callable[[ActorContext], Any],
        status: int = 200,
        **ids,
    ) -> ApiResponse:
        with log_context(operation=operation, **{k: v for k, v in ids.items() if v is not None}):
            try:
                actor = self._resolve(user_id)
                result = action(actor)
            except EngineError as e:
                logger.info(
                    f"{operation} refused: {e.kind}",
                    extra={"event": "api.refused", "error_kind": e.kind},
                )
                return ApiResponse(e.status, e.to_body())
            except PersistenceError as e:
                logger.error(
                    f"{operation} failed in the store: {e}",
                    exc_info=True,
                    extra={"event": "api.internal_error", "user_id": user_id, **ids},
                )
                error = InternalError("An internal error occurred")
                return ApiResponse(error.status, error.to_body())

        return ApiResponse(status, result)


def _int_param(params: Dict[str, Any], name: str, default: int) -> int:
    try:
        return int(params.get(name, default))
    except (TypeError, ValueError):
        raise ValidationFailedError(f"{name} must be an integer") from None
