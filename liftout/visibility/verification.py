"""Company verification lookups."""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from liftout.logging import get_logger
from liftout.persistence.repositories import CompanyRepository, CompanyUserRepository

logger = get_logger(__name__, component="verification")


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of a verification lookup.

    ``company_id`` is populated whenever the user belongs to a company, even
    an unverified one, so callers can still evaluate block lists.
    """

    is_verified: bool
    company_id: Optional[str] = None


UNAFFILIATED = VerificationResult(is_verified=False, company_id=None)


class VerificationGate:
    """Answers "is this user acting for a verified company?"."""

    def __init__(self, session: Session):
        self.company_users = CompanyUserRepository(session)
        self.companies = CompanyRepository(session)

    def check(self, user_id: str) -> VerificationResult:
        membership = self.company_users.get_by_user(user_id)
        if membership is None:
            return UNAFFILIATED

        company = self.companies.get(membership.company_id)
        if company is None:
            logger.warning(
                f"Company {membership.company_id} referenced by user {user_id} does not exist",
                extra={"event": "verification.company_missing", "user_id": user_id},
            )
            return VerificationResult(is_verified=False, company_id=membership.company_id)

        return VerificationResult(is_verified=company.is_verified, company_id=company.id)
