"""Member balances for admission checks."""

from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from coopflow.core.eligibility import MemberFinancials
from coopflow.db.models import MemberAccount


class MemberDirectory:
    """Reads a member's figures from ``member_accounts``."""

    def __init__(self, db: Session):
        self.db = db

    def financials(self, member_id: str) -> Optional[MemberFinancials]:
        """The member's current figures, or None if they have no account."""
        account = self.db.get(MemberAccount, member_id)
        if account is None:
            return None
        return MemberFinancials(
            member_id=account.member_id,
            total_savings=Decimal(account.total_savings),
            total_contributions=Decimal(account.total_contributions),
            monthly_salary=Decimal(account.monthly_salary),
            has_active_loan=bool(account.has_active_loan),
            willing_deposit_balance=Decimal(account.willing_deposit_balance),
        )
