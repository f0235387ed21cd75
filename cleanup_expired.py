# cleanup_expired.py
#
# Remove expired staged accounts, password reset tokens and login sessions.
# Meant for cron; the API also runs this once at startup.

from sqlmodel import Session

from bizmodel.core.config import get_settings
from bizmodel.core.logging import configure_logging
from bizmodel.database import create_db_and_tables, engine
from bizmodel.repositories.session_repo import LoginSessionRepository
from bizmodel.repositories.staged_repo import StagedAccountRepository
from bizmodel.repositories.user_repo import UserRepository
from bizmodel.services.cleanup_service import CleanupService


def main():
    configure_logging(get_settings().LOG_LEVEL)
    create_db_and_tables()
    service = CleanupService(StagedAccountRepository(), UserRepository(), LoginSessionRepository())
    with Session(engine) as session:
        report = service.purge_expired(session)
    print(
        f"Removed {report.staged_accounts} staged accounts, "
        f"{report.reset_tokens} reset tokens, {report.sessions} sessions."
    )


if __name__ == "__main__":
    main()
