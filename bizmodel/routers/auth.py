# bizmodel/routers/auth.py
from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response, status
from sqlmodel import Session

from bizmodel.core.auth import get_session_gate, require_auth
from bizmodel.core.identity import StagedRef
from bizmodel.core.session import SessionGate
from bizmodel.database import get_session
from bizmodel.models.user import User
from bizmodel.repositories.payment_repo import PaymentRepository
from bizmodel.repositories.quiz_attempt_repo import QuizAttemptRepository
from bizmodel.repositories.session_repo import LoginSessionRepository
from bizmodel.repositories.staged_repo import StagedAccountRepository
from bizmodel.repositories.user_repo import UserRepository
from bizmodel.schemas.base import Message
from bizmodel.schemas.user import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    ProfileUpdate,
    ResetPasswordRequest,
    SignupRequest,
    StagedUserRead,
    TokenValidity,
    UnsubscribeRequest,
    UserRead,
)
from bizmodel.services.email_service import EmailSender, get_email_sender
from bizmodel.services.staging_service import StagingService
from bizmodel.services.user_service import UserService

router = APIRouter(prefix="/auth", tags=["Auth"])

user_repo = UserRepository()
service = UserService(user_repo, PaymentRepository(), LoginSessionRepository())
staging = StagingService(StagedAccountRepository(), user_repo, QuizAttemptRepository())

RESET_REQUESTED_MESSAGE = "If an account with that email exists, a reset link has been sent."


# -------- Signup / login --------


@router.post("/signup", response_model=StagedUserRead, status_code=status.HTTP_201_CREATED)
def signup(payload: SignupRequest, session: Session = Depends(get_session)):
    """
    Stage a new account.

    Nothing durable is written until the first payment completes; the
    returned id ("temp_<token>") is what the checkout endpoints take.

    Errors:
      - 409 if the email already belongs to an account (log in instead).
    """
    staged = staging.stage_account(
        session,
        email=payload.email,
        password=payload.password,
        name=payload.name,
        quiz_data=payload.quiz_data,
    )
    return StagedUserRead(
        id=StagedRef(staged.token),
        email=staged.email,
        name=staged.name,
        expires_at=staged.expires_at,
    )


@router.post("/login", response_model=UserRead)
def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    session: Session = Depends(get_session),
    gate: SessionGate = Depends(get_session_gate),
):
    """Check credentials and start a session (cookie + fallback entry)."""
    user = service.authenticate(session, payload.email, payload.password)
    gate.establish_session(request, response, session, user.id)
    return service.to_read(session, user)


@router.post("/logout", response_model=Message)
def logout(
    request: Request,
    response: Response,
    session: Session = Depends(get_session),
    gate: SessionGate = Depends(get_session_gate),
):
    """Always succeeds, logged in or not."""
    gate.destroy_session(request, response, session)
    return Message(message="Logged out")


# -------- Self profile --------


@router.get("/me", response_model=UserRead)
def read_me(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    return service.to_read(session, current_user)


@router.patch("/profile", response_model=UserRead)
def update_profile(
    payload: ProfileUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    """Partial update: name and/or isUnsubscribed."""
    user = service.update_profile(session, current_user, payload)
    return service.to_read(session, user)


@router.post("/change-password", response_model=Message)
def change_password(
    payload: ChangePasswordRequest,
    request: Request,
    response: Response,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
    gate: SessionGate = Depends(get_session_gate),
):
    """
    Change the password and sign out every other browser.

    The caller keeps a fresh session.
    """
    user_id = current_user.id
    service.change_password(session, current_user, payload.current_password, payload.new_password)
    gate.establish_session(request, response, session, user_id)
    return Message(message="Password updated")


@router.delete("/account", response_model=Message)
def delete_account(
    request: Request,
    response: Response,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
    gate: SessionGate = Depends(get_session_gate),
):
    """
    Delete the caller's account.

    Quiz attempts, payments, refunds and sessions go with it (ON DELETE
    CASCADE); the cookie and fallback entry are cleared.
    """
    service.delete_account(session, current_user)
    gate.destroy_session(request, response, session)
    return Message(message="Account deleted")


# -------- Password reset / email preferences --------


@router.post("/forgot-password", response_model=Message)
def forgot_password(
    payload: ForgotPasswordRequest,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    sender: EmailSender = Depends(get_email_sender),
):
    """Same answer whether or not the email is registered."""
    email = service.request_password_reset(session, payload.email)
    if email is not None:
        background_tasks.add_task(sender.send, email.template, email.recipient, email.data)
    return Message(message=RESET_REQUESTED_MESSAGE)


@router.get("/verify-reset-token/{token}", response_model=TokenValidity)
def verify_reset_token(token: str, session: Session = Depends(get_session)):
    service.verify_reset_token(session, token)
    return TokenValidity(valid=True)


@router.post("/reset-password", response_model=Message)
def reset_password(payload: ResetPasswordRequest, session: Session = Depends(get_session)):
    service.reset_password(session, payload.token, payload.password)
    return Message(message="Password has been reset. Please log in.")


@router.post("/unsubscribe", response_model=Message)
def unsubscribe(payload: UnsubscribeRequest, session: Session = Depends(get_session)):
    """Always succeeds, so it never reveals whether an email has an account."""
    service.unsubscribe(session, payload.email)
    return Message(message="You have been unsubscribed.")
