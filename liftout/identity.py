"""Resolution of the calling actor.

The engine never authenticates anyone itself; an identity provider hands it
an ``ActorContext`` for each request.
"""

from typing import Dict, Optional, Protocol

from sqlalchemy.orm import Session

from liftout.domain.exceptions import UnauthorizedError
from liftout.domain.models import ActorContext, UserType
from liftout.persistence.repositories import CompanyUserRepository, UserRepository


class IdentityProvider(Protocol):
    def resolve(self, user_id: Optional[str]) -> ActorContext:
        """Return the actor for user_id or raise UnauthorizedError."""
        ...


class StaticIdentityProvider:
    """Fixed mapping of user id to actor. Used by tests and local tooling."""

    def __init__(self, actors: Optional[Dict[str, ActorContext]] = None):
        self.actors: Dict[str, ActorContext] = dict(actors or {})

    def register(self, actor: ActorContext) -> None:
        self.actors[actor.user_id] = actor

    def resolve(self, user_id: Optional[str]) -> ActorContext:
        if not user_id or user_id not in self.actors:
            raise UnauthorizedError("Authentication required")
        return self.actors[user_id]


class StoreIdentityProvider:
    """Derive role and company from the users and company_users tables.

    Deleted users are treated as unauthenticated.
    """

    def __init__(self, session: Session):
        self.session = session

    def resolve(self, user_id: Optional[str]) -> ActorContext:
        if not user_id:
            raise UnauthorizedError("Authentication required")

        user = UserRepository(self.session).get(user_id)
        if user is None or user.is_deleted:
            raise UnauthorizedError("Authentication required")

        company_id = None
        if user.user_type == UserType.COMPANY:
            membership = CompanyUserRepository(self.session).get_by_user(user_id)
            company_id = membership.company_id if membership else None

        return ActorContext(user_id=user.id, role=user.user_type, company_id=company_id)
