# bizmodel/services/access_service.py
from sqlmodel import Session

from bizmodel.models.user import User
from bizmodel.repositories.quiz_attempt_repo import QuizAttemptRepository
from bizmodel.schemas.access import AccessSnapshot, ClientAccessState, ReconcileResult
from bizmodel.services.unlock_service import UnlockService

# Keys the server is authoritative for (attribute names)
_AUTHORITATIVE = (
    "current_quiz_attempt_id",
    "has_unlocked_analysis",
    "has_completed_quiz",
    "user_email",
    "quiz_data",
)


class AccessService:
    """
    Server side of the client's advisory access cache.

    The client caches a handful of flags in local storage to render quickly.
    This service rebuilds them from the ledger and tells the client which of
    its cached values are out of date. Cached values are compared, never
    trusted.
    """

    def __init__(self, attempt_repo: QuizAttemptRepository, unlock: UnlockService):
        self.attempt_repo = attempt_repo
        self.unlock = unlock

    def build_snapshot(self, session: Session, user: User) -> AccessSnapshot:
        latest = self.attempt_repo.latest_for_user(session, user.id)
        if latest is None:
            return AccessSnapshot(user_email=user.email)
        return AccessSnapshot(
            current_quiz_attempt_id=latest.id,
            has_unlocked_analysis=self.unlock.is_unlocked(session, user.id, latest.id),
            has_completed_quiz=True,
            user_email=user.email,
            quiz_data=latest.quiz_data,
        )

    def reconcile(self, session: Session, user: User, client: ClientAccessState) -> ReconcileResult:
        """
        Compare what the client sent against the snapshot.

        Only keys the client actually sent are checked; stale keys are
        reported by their wire (camelCase) names.
        """
        snapshot = self.build_snapshot(session, user)
        stale = [
            AccessSnapshot.model_fields[name].alias or name
            for name in _AUTHORITATIVE
            if name in client.model_fields_set
            and getattr(client, name) != getattr(snapshot, name)
        ]
        return ReconcileResult(
            snapshot=snapshot,
            stale_keys=stale,
            congratulations_shown=client.congratulations_shown,
        )
