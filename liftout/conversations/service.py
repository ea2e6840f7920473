"""Conversations: creation behind the confidentiality gate, messaging, access.

A company user opening a conversation with an anonymous team must pass the
verification gate, must not be blocked by the team, and must accept the
confidentiality terms in the same request. The conversation's anonymity is
fixed at creation; later visibility changes on the team do not affect it.
"""

from typing import Callable, Dict, List, Optional

from liftout.domain.exceptions import (
    ForbiddenParticipantError,
    NdaRequiredError,
    NotFoundError,
    ValidationFailedError,
)
from liftout.domain.models import (
    ActorContext,
    Conversation,
    ConversationParticipant,
    ConversationStatus,
    Message,
    NdaLedger,
    ParticipantRole,
    UserType,
)
from liftout.logging import get_logger
from liftout.logging.context import log_context
from liftout.notifications.dispatcher import NotificationDispatcher
from liftout.notifications.models import NotificationType
from liftout.notifications.payloads import new_message_payload
from liftout.persistence.database import get_session
from liftout.persistence.repositories import ConversationRepository, TeamRepository, UserRepository
from liftout.utils.ids import new_id
from liftout.utils.timestamps import utc_now
from liftout.visibility.resolver import VisibilityResolver

from .projection import ConversationView, display_name_for, project_conversation, project_message

logger = get_logger(__name__, component="conversations")

MAX_MESSAGE_LENGTH = 10000


def requires_nda(conversation: Conversation, user_id: str) -> bool:
    """True while user_id still has to accept the terms of an anonymous conversation."""
    return conversation.is_anonymous and not conversation.nda_ledger.has_accepted(user_id)


class ConversationService:
    def __init__(
        self,
        dispatcher: Optional[NotificationDispatcher] = None,
        session_factory: Callable = get_session,
        clock: Callable = utc_now,
    ):
        self.dispatcher = dispatcher
        self.session_factory = session_factory
        self.clock = clock

    def create_conversation(
        self,
        actor: ActorContext,
        participant_ids: List[str],
        team_id: Optional[str] = None,
        opportunity_id: Optional[str] = None,
        subject: Optional[str] = None,
        accept_nda: bool = False,
        initial_message: Optional[str] = None,
    ) -> ConversationView:
        """Open a conversation between the actor and participant_ids.

        Raises:
            ValidationFailedError: Fewer than two participants or unknown users
            NotFoundError: team_id does not exist
            ForbiddenVerificationError: Company is not verified for an anonymous team
            ForbiddenBlockedError: The team blocked the actor's company
            NdaRequiredError: Anonymous team and accept_nda is not set
        """
        ids = list(dict.fromkeys([actor.user_id, *participant_ids]))
        if len(ids) < 2:
            raise ValidationFailedError("A conversation requires at least 2 participants")

        now = self.clock()
        pending_notifications = []

        with log_context(actor_id=actor.user_id, team_id=team_id):
            with self.session_factory() as session:
                users = UserRepository(session).get_many(ids)
                if len(users) != len(ids) or any(u.is_deleted for u in users.values()):
                    raise ValidationFailedError("One or more participant IDs are invalid")

                is_anonymous = False
                company_id = actor.company_id
                if team_id is not None:
                    team = TeamRepository(session).get(team_id)
                    if team is None:
                        raise NotFoundError(f"Team {team_id} not found")

                    if actor.role == UserType.COMPANY:
                        resolver = VisibilityResolver(session)
                        resolver.require_view(team, actor)
                        if team.is_effectively_anonymous and not accept_nda:
                            raise NdaRequiredError(
                                "You must accept the confidentiality agreement to contact this team"
                            )
                        company_id = company_id or resolver.gate.check(actor.user_id).company_id

                    is_anonymous = team.is_effectively_anonymous

                if actor.role == UserType.COMPANY:
                    self._require_team_route(session, actor, ids, team_id)

                ledger = NdaLedger()
                if is_anonymous and accept_nda:
                    ledger = ledger.record(actor.user_id, now)

                conversation = Conversation(
                    id=new_id(),
                    team_id=team_id,
                    company_id=company_id,
                    opportunity_id=opportunity_id,
                    subject=subject,
                    status=ConversationStatus.ACTIVE,
                    is_anonymous=is_anonymous,
                    participants=[
                        ConversationParticipant(
                            user_id=uid,
                            role=ParticipantRole.CREATOR if uid == actor.user_id else ParticipantRole.PARTICIPANT,
                            position=position,
                            joined_at=now,
                        )
                        for position, uid in enumerate(ids)
                    ],
                    nda_ledger=ledger,
                    created_at=now,
                )
                repo = ConversationRepository(session)
                repo.add(conversation)

                if initial_message:
                    content = _validate_content(initial_message)
                    message = Message(
                        id=new_id(),
                        conversation_id=conversation.id,
                        sender_id=actor.user_id,
                        content=content,
                        sent_at=now,
                    )
                    repo.add_message(message)
                    pending_notifications = self._message_notifications(conversation, message, users)

                conversation = repo.get(conversation.id)

            logger.info(
                f"Conversation {conversation.id} created with {len(ids)} participants",
                extra={
                    "event": "conversation.created",
                    "conversation_id": conversation.id,
                    "is_anonymous": is_anonymous,
                    "nda_accepted": bool(ledger.accepted_by),
                },
            )
            self._dispatch(pending_notifications)
            return project_conversation(conversation, actor.user_id, users)

    @staticmethod
    def _require_team_route(session, actor: ActorContext, ids: List[str], team_id: Optional[str]) -> None:
        """Members of an anonymous team are reachable by a company only through that team.

        Raises:
            ForbiddenVerificationError: The actor may not see such a team at all
            ForbiddenBlockedError: Such a team blocked the actor's company
            ValidationFailedError: The team is visible but was not named as team_id
        """
        others = [uid for uid in ids if uid != actor.user_id]
        resolver = VisibilityResolver(session)
        for team in TeamRepository(session).list_for_participants(others):
            if team.id == team_id or not team.is_effectively_anonymous:
                continue
            if team.created_by == actor.user_id or team.is_active_member(actor.user_id):
                continue
            resolver.require_view(team, actor)
            logger.warning(
                "Conversation with anonymous team members refused without the team",
                extra={"event": "conversation.team_route_required", "requested_team_id": team_id},
            )
            raise ValidationFailedError(
                "Members of an anonymous team can only be contacted through that team"
            )

    def accept_nda(self, conversation_id: str, actor: ActorContext) -> ConversationView:
        """Record the actor's acceptance on an existing conversation. Idempotent."""
        with log_context(actor_id=actor.user_id, conversation_id=conversation_id):
            with self.session_factory() as session:
                repo = ConversationRepository(session)
                conversation = self._load_for_participant(repo, conversation_id, actor)

                ledger = conversation.nda_ledger.record(actor.user_id, self.clock())
                if ledger is not conversation.nda_ledger:
                    repo.save_nda_ledger(conversation_id, ledger)
                    logger.info(
                        "Confidentiality terms accepted",
                        extra={"event": "conversation.nda_accepted"},
                    )
                    conversation = repo.get(conversation_id)

                users = UserRepository(session).get_many(p.user_id for p in conversation.participants)
            return project_conversation(conversation, actor.user_id, users)

    def get_conversation(self, conversation_id: str, actor: ActorContext) -> ConversationView:
        with self.session_factory() as session:
            conversation = self._load_for_participant(ConversationRepository(session), conversation_id, actor)
            users = UserRepository(session).get_many(p.user_id for p in conversation.participants)
        return project_conversation(conversation, actor.user_id, users)

    def list_conversations(self, actor: ActorContext) -> List[ConversationView]:
        """Active participations of the actor, blocked conversations excluded."""
        with self.session_factory() as session:
            conversations = [
                c
                for c in ConversationRepository(session).list_for_user(actor.user_id)
                if c.status != ConversationStatus.BLOCKED
            ]
            users = UserRepository(session).get_many(
                p.user_id for c in conversations for p in c.participants
            )
        return [project_conversation(c, actor.user_id, users) for c in conversations]

    def list_messages(self, conversation_id: str, actor: ActorContext, limit: int = 100) -> List[Dict]:
        with self.session_factory() as session:
            repo = ConversationRepository(session)
            conversation = self._load_for_participant(repo, conversation_id, actor)
            messages = repo.list_messages(conversation_id, limit=limit)
            users = UserRepository(session).get_many(p.user_id for p in conversation.participants)
        return [project_message(m, conversation, actor.user_id, users) for m in messages]

    def send_message(self, conversation_id: str, actor: ActorContext, content: str) -> Dict:
        """Post a message and notify the other active participants.

        Raises:
            ValidationFailedError: Empty/oversized content or blocked conversation
            NotFoundError: Unknown conversation
            ForbiddenParticipantError: Actor is not an active participant
            NdaRequiredError: Company user has not accepted the terms of an anonymous conversation
        """
        content = _validate_content(content)

        with log_context(actor_id=actor.user_id, conversation_id=conversation_id):
            with self.session_factory() as session:
                repo = ConversationRepository(session)
                conversation = self._load_for_participant(repo, conversation_id, actor)

                if conversation.status == ConversationStatus.BLOCKED:
                    raise ValidationFailedError("Cannot send messages in a blocked conversation")
                if actor.role == UserType.COMPANY and requires_nda(conversation, actor.user_id):
                    raise NdaRequiredError("Accept the confidentiality agreement before messaging")

                message = repo.add_message(
                    Message(
                        id=new_id(),
                        conversation_id=conversation_id,
                        sender_id=actor.user_id,
                        content=content,
                        sent_at=self.clock(),
                    )
                )
                users = UserRepository(session).get_many(p.user_id for p in conversation.participants)
                pending = self._message_notifications(conversation, message, users)

            logger.info(
                "Message sent",
                extra={"event": "message.sent", "message_id": message.id, "recipient_count": len(pending)},
            )
            self._dispatch(pending)
            return project_message(message, conversation, actor.user_id, users)

    def leave_conversation(self, conversation_id: str, actor: ActorContext) -> None:
        with log_context(actor_id=actor.user_id, conversation_id=conversation_id):
            with self.session_factory() as session:
                repo = ConversationRepository(session)
                self._load_for_participant(repo, conversation_id, actor)
                repo.mark_left(actor.user_id, self.clock(), conversation_id=conversation_id)
            logger.info("Participant left conversation", extra={"event": "conversation.left"})

    def _load_for_participant(
        self, repo: ConversationRepository, conversation_id: str, actor: ActorContext
    ) -> Conversation:
        conversation = repo.get(conversation_id)
        if conversation is None:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        if not conversation.is_active_participant(actor.user_id):
            raise ForbiddenParticipantError("You do not have access to this conversation")
        return conversation

    def _message_notifications(self, conversation: Conversation, message: Message, users) -> List[tuple]:
        """One (recipient, payload) per other active participant who wants message e-mails."""
        pending = []
        for recipient_id in conversation.active_participant_ids():
            if recipient_id == message.sender_id:
                continue
            recipient = users.get(recipient_id)
            if recipient is None or not recipient.notify_on_message:
                continue
            payload = new_message_payload(
                conversation_id=conversation.id,
                message_id=message.id,
                sender_name=display_name_for(conversation, message.sender_id, recipient_id, users),
                content=message.content,
                subject=conversation.subject,
            )
            pending.append((recipient_id, payload))
        return pending

    def _dispatch(self, pending: List[tuple]) -> None:
        if self.dispatcher is None:
            return
        for recipient_id, payload in pending:
            self.dispatcher.notify(recipient_id, NotificationType.NEW_MESSAGE, payload)


def _validate_content(content: Optional[str]) -> str:
    if content is None or not content.strip():
        raise ValidationFailedError("Message content must not be empty")
    if len(content) > MAX_MESSAGE_LENGTH:
        raise ValidationFailedError(f"Message content exceeds {MAX_MESSAGE_LENGTH} characters")
    return content
