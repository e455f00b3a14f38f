from functools import lru_cache
from typing import Generator, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session, sessionmaker

from coopflow.common.config import load_config
from coopflow.core.approval import ApprovalService, StagePolicyTable
from coopflow.core.config import Settings, get_settings
from coopflow.core.eligibility import LoanProduct, load_products
from coopflow.core.rbac import ActorContext, PermissionSnapshot
from coopflow.core.security import decode_token
from coopflow.db.models import User
from coopflow.services.members import MemberDirectory
from coopflow.services.notifications import NotificationEmitter, RecordingNotifier

bearer_scheme = HTTPBearer(auto_error=False)


def get_session_factory() -> sessionmaker:
    """Session factory for the configured database."""
    from coopflow.db.session import SessionLocal

    return SessionLocal


def get_db(session_factory: sessionmaker = Depends(get_session_factory)) -> Generator:
    """Database session dependency."""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@lru_cache
def _workflow_config(path: Optional[str]) -> dict:
    return load_config(path) if path else {}


def get_policies(settings: Settings = Depends(get_settings)) -> StagePolicyTable:
    return StagePolicyTable.from_config(_workflow_config(settings.stage_policy_path))


def get_loan_products(settings: Settings = Depends(get_settings)) -> list[LoanProduct]:
    return load_products(_workflow_config(settings.stage_policy_path))


def get_member_directory(db: Session = Depends(get_db)) -> MemberDirectory:
    """Server-side source of member balances for admission checks."""
    return MemberDirectory(db)


def get_notifier(request: Request) -> NotificationEmitter:
    """Emitter created at application startup."""
    notifier = getattr(request.app.state, "notifier", None)
    if notifier is None:
        notifier = request.app.state.notifier = RecordingNotifier()
    return notifier


def get_approval_service(
    session_factory: sessionmaker = Depends(get_session_factory),
    policies: StagePolicyTable = Depends(get_policies),
    notifier: NotificationEmitter = Depends(get_notifier),
) -> ApprovalService:
    return ApprovalService(session_factory, policies=policies, notifier=notifier)


def get_current_user(
    db: Session = Depends(get_db),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> User:
    """Get current authenticated user from JWT token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials:
        user_id = decode_token(credentials.credentials)
        if user_id:
            user = db.get(User, user_id)
            if user and user.is_active:
                return user

    raise credentials_exception


def get_current_actor(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> ActorContext:
    """Acting user with a permission snapshot loaded for this request."""
    return ActorContext(
        actor_id=str(user.id),
        role=user.role.name,
        snapshot=PermissionSnapshot.from_roles(db),
        member_id=user.member_id,
    )
