# bizmodel/services/cleanup_service.py
from dataclasses import dataclass

from sqlmodel import Session

from bizmodel.core.clock import utcnow
from bizmodel.core.logging import get_logger
from bizmodel.repositories.session_repo import LoginSessionRepository
from bizmodel.repositories.staged_repo import StagedAccountRepository
from bizmodel.repositories.user_repo import UserRepository

logger = get_logger(__name__)


@dataclass
class CleanupReport:
    staged_accounts: int
    reset_tokens: int
    sessions: int


class CleanupService:
    """
    Garbage-collect expired rows.

    Abandoned checkouts need no cancellation signal: their staged rows simply
    expire and are removed here (reads already ignore them).
    """

    def __init__(
        self,
        staged_repo: StagedAccountRepository,
        user_repo: UserRepository,
        session_repo: LoginSessionRepository,
    ):
        self.staged_repo = staged_repo
        self.user_repo = user_repo
        self.session_repo = session_repo

    def purge_expired(self, session: Session) -> CleanupReport:
        now = utcnow()
        staged = self.staged_repo.purge_expired(session, now)
        session.commit()
        report = CleanupReport(
            staged_accounts=staged,
            reset_tokens=self.user_repo.purge_expired_reset_tokens(session, now),
            sessions=self.session_repo.purge_expired(session, now),
        )
        logger.info(
            "Cleanup: %s staged accounts, %s reset tokens, %s sessions removed",
            report.staged_accounts,
            report.reset_tokens,
            report.sessions,
        )
        return report
