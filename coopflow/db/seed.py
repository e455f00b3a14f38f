"""Database seeding for coopflow.

Creates the default cooperative roles, staff accounts and member balances.
"""

import uuid
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import and_, select
from sqlalchemy.orm import Session

from coopflow.core.rbac.roles import DEFAULT_ROLES
from coopflow.db.models import MemberAccount, Role, User


def seed_default_roles(db: Session) -> Dict[str, Role]:
    """
    Create the default roles.

    Idempotent: roles that already exist are returned unchanged, so grants
    an administrator edited are not reset.

    Args:
        db: Database session

    Returns:
        Dict mapping role name to Role object
    """
    roles = {}

    for name, role_config in DEFAULT_ROLES.items():
        existing = db.scalars(
            select(Role).where(and_(Role.name == name, Role.is_system == True))  # noqa: E712
        ).first()

        if existing:
            roles[name] = existing
            continue

        role = Role(
            id=uuid.uuid4(),
            name=name,
            description=role_config["description"],
            permissions=list(role_config["permissions"]),
            is_system=True,
        )
        db.add(role)
        roles[name] = role

    db.flush()
    return roles


def get_role_by_name(db: Session, name: str) -> Optional[Role]:
    return db.scalars(select(Role).where(Role.name == name)).first()


def create_user(
    db: Session,
    email: str,
    name: str,
    role_name: str,
    *,
    member_id: Optional[str] = None,
) -> User:
    """
    Create a user bound to an existing role.

    Raises:
        ValueError: If the role does not exist
    """
    role = get_role_by_name(db, role_name)
    if role is None:
        raise ValueError(f"Unknown role: {role_name}")

    user = User(
        id=uuid.uuid4(),
        role_id=role.id,
        email=email,
        name=name,
        member_id=member_id,
        is_active=True,
    )
    db.add(user)
    db.flush()
    return user


MEMBER_FIGURES = (
    "total_savings",
    "total_contributions",
    "willing_deposit_balance",
    "monthly_salary",
)


def upsert_member_account(db: Session, member_id: str, **figures: Any) -> MemberAccount:
    """
    Create or update a member's balances.

    Monetary figures are taken as decimal strings, ints or Decimals.

    Raises:
        ValueError: Unknown figure name
    """
    unknown = set(figures) - set(MEMBER_FIGURES) - {"has_active_loan"}
    if unknown:
        raise ValueError(f"Unknown member figures: {', '.join(sorted(unknown))}")

    account = db.get(MemberAccount, member_id)
    if account is None:
        account = MemberAccount(member_id=member_id)
        db.add(account)

    for name, value in figures.items():
        if name in MEMBER_FIGURES:
            value = Decimal(str(value))
        setattr(account, name, value)

    db.flush()
    return account
