"""Factory functions for creating test records.

Database factories add the instance to the session and flush so that
generated fields (id, created_at) are populated. All fields have sensible
defaults but can be overridden via keyword arguments.

Usage::

    from tests.factories import create_user, make_assessment

    def test_something(db_session):
        user = create_user(db_session, role_name="ACCOUNTANT")
        assert user.role.name == "ACCOUNTANT"
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from coopflow.core.eligibility import (
    DEFAULT_LOAN_PRODUCTS,
    EligibilityAssessment,
    MemberFinancials,
    WithdrawalAssessment,
    assess_loan,
    assess_withdrawal,
)
from coopflow.db.models import Role, User


_counter = 0


def _next_id() -> int:
    """Return a monotonically increasing integer for unique default values."""
    global _counter
    _counter += 1
    return _counter


# ---------------------------------------------------------------------------
# Role / User
# ---------------------------------------------------------------------------


def create_role(
    session: Session,
    *,
    name: Optional[str] = None,
    permissions: Optional[list] = None,
    is_system: bool = False,
) -> Role:
    n = _next_id()
    role = Role(
        name=name or f"ROLE_{n}",
        permissions=permissions if permissions is not None else ["WITHDRAWALS:VIEW"],
        is_system=is_system,
    )
    session.add(role)
    session.flush()
    return role


def create_user(
    session: Session,
    *,
    role_name: Optional[str] = None,
    role: Optional[Role] = None,
    email: Optional[str] = None,
    name: Optional[str] = None,
    member_id: Optional[str] = None,
    is_active: bool = True,
) -> User:
    if role is None:
        if role_name is not None:
            role = session.scalars(select(Role).where(Role.name == role_name)).one()
        else:
            role = create_role(session)
    n = _next_id()
    user = User(
        role_id=role.id,
        email=email or f"user-{n}@example.com",
        name=name or f"Test User {n}",
        member_id=member_id,
        is_active=is_active,
    )
    session.add(user)
    session.flush()
    return user


# ---------------------------------------------------------------------------
# Eligibility
# ---------------------------------------------------------------------------


def make_financials(
    member_id: str = "M-001",
    *,
    total_savings: str = "100000",
    total_contributions: str = "60000",
    monthly_salary: str = "20000",
    willing_deposit_balance: str = "250000",
    has_active_loan: bool = False,
) -> MemberFinancials:
    return MemberFinancials(
        member_id=member_id,
        total_savings=Decimal(total_savings),
        total_contributions=Decimal(total_contributions),
        monthly_salary=Decimal(monthly_salary),
        has_active_loan=has_active_loan,
        willing_deposit_balance=Decimal(willing_deposit_balance),
    )


def make_assessment(
    member_id: str = "M-001",
    amount: str = "50000.00",
    tenure_months: int = 12,
    **financials,
) -> EligibilityAssessment:
    """Assessment of a loan against the default products."""
    return assess_loan(
        make_financials(member_id, **financials),
        DEFAULT_LOAN_PRODUCTS,
        Decimal(amount),
        tenure_months,
    )


def make_withdrawal_assessment(
    member_id: str = "M-001",
    amount="100",
    **financials,
) -> WithdrawalAssessment:
    """Balance check of a withdrawal; the default balance covers most amounts."""
    return assess_withdrawal(make_financials(member_id, **financials), Decimal(str(amount)))
