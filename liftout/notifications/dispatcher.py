"""Fire-and-forget notification dispatch.

Services call ``notify`` after their transaction has committed. The work runs
on a thread pool: an in-app Notification row is written in its own session
and, when enabled, an e-mail is sent. Nothing that happens here can fail the
operation that triggered it; failures are logged and dropped.
"""

from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, Optional

from liftout.domain.models import Notification
from liftout.logging import get_logger
from liftout.logging.context import get_log_context, log_context
from liftout.persistence.database import get_session
from liftout.persistence.repositories import NotificationRepository, UserRepository
from liftout.utils.ids import new_id
from liftout.utils.timestamps import utc_now

from .email import EmailSender
from .payloads import EMAIL_TEMPLATES, build_email_context

logger = get_logger(__name__, component="notification")


class NotificationDispatcher:
    def __init__(
        self,
        email_sender: Optional[EmailSender] = None,
        executor: Optional[Executor] = None,
        max_workers: int = 4,
        email_enabled: bool = True,
        session_factory: Callable = get_session,
    ):
        self.email_sender = email_sender
        self.executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="liftout-notify"
        )
        self.email_enabled = email_enabled
        self.session_factory = session_factory

    def notify(self, user_id: str, type: str, payload: Dict[str, Any]) -> Optional[Future]:
        """Queue a notification for user_id. Returns the Future, or None if it could not be queued."""
        # Carry the request's log fields onto the worker thread
        context = get_log_context()
        try:
            return self.executor.submit(self._deliver, user_id, type, dict(payload), context)
        except RuntimeError as e:
            logger.error(
                f"Could not queue {type} notification for {user_id}: {e}",
                extra={"event": "notification.dispatch.failed", "user_id": user_id, "type": type},
            )
            return None

    def _deliver(self, user_id: str, type: str, payload: Dict[str, Any], context: Dict[str, Any]) -> None:
        with log_context(**context):
            try:
                with self.session_factory() as session:
                    user = UserRepository(session).get(user_id)
                    if user is None or user.is_deleted:
                        logger.info(
                            f"Skipping {type} notification for unknown or deleted user {user_id}",
                            extra={"event": "notification.skip", "user_id": user_id},
                        )
                        return
                    NotificationRepository(session).add(
                        Notification(id=new_id(), user_id=user_id, type=type, payload=payload, created_at=utc_now())
                    )

                logger.info(
                    f"Recorded {type} notification for {user_id}",
                    extra={"event": "notification.recorded", "user_id": user_id, "type": type},
                )

                template = EMAIL_TEMPLATES.get(type)
                if self.email_enabled and self.email_sender is not None and template:
                    self.email_sender.send(user.email, template, build_email_context(user, payload))

            except Exception as e:
                logger.error(
                    f"Notification dispatch failed for {user_id}: {e}",
                    exc_info=True,
                    extra={"event": "notification.dispatch.failed", "user_id": user_id, "type": type},
                )

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)
