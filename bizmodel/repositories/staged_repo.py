# bizmodel/repositories/staged_repo.py
from datetime import datetime

from sqlalchemy import delete
from sqlmodel import Session, select

from bizmodel.models.staged_account import StagedAccount, AccountPromotion


class StagedAccountRepository:
    """
    Data access layer for staged accounts and their promotion records.

    NOTE:
      - No commits here; staging and promotion are multi-step transactions.
        The service is responsible for calling session.commit().
    """

    # ---- Staged accounts ----

    def get(self, session: Session, token: str) -> StagedAccount | None:
        return session.get(StagedAccount, token)

    def get_by_intent(self, session: Session, processor_intent_id: str) -> StagedAccount | None:
        stmt = select(StagedAccount).where(
            StagedAccount.processor_intent_id == processor_intent_id
        )
        return session.exec(stmt).first()

    def add(self, session: Session, staged: StagedAccount) -> StagedAccount:
        session.add(staged)
        session.flush()
        return staged

    def delete(self, session: Session, staged: StagedAccount) -> None:
        session.delete(staged)
        session.flush()

    def delete_for_email(self, session: Session, email: str) -> None:
        session.exec(delete(StagedAccount).where(StagedAccount.email == email))  # type: ignore[call-overload]

    def purge_expired(self, session: Session, now: datetime) -> int:
        result = session.exec(delete(StagedAccount).where(StagedAccount.expires_at < now))  # type: ignore[call-overload]
        return result.rowcount or 0

    # ---- Promotions ----

    def get_promotion(self, session: Session, token: str) -> AccountPromotion | None:
        return session.get(AccountPromotion, token)

    def add_promotion(self, session: Session, promotion: AccountPromotion) -> AccountPromotion:
        session.add(promotion)
        session.flush()
        return promotion
