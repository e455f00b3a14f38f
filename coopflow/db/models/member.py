from sqlalchemy import Boolean, Column, DateTime, Numeric, String

from coopflow.db.base import Base, utcnow


class MemberAccount(Base):
    """
    A member's balances as kept by the cooperative's books.

    Submission reads these figures to admit withdrawals and loans; callers
    never supply them.
    """

    __tablename__ = "member_accounts"

    member_id = Column(String(64), primary_key=True)
    total_savings = Column(Numeric(18, 2, asdecimal=True), nullable=False, default=0)
    total_contributions = Column(Numeric(18, 2, asdecimal=True), nullable=False, default=0)
    willing_deposit_balance = Column(Numeric(18, 2, asdecimal=True), nullable=False, default=0)
    monthly_salary = Column(Numeric(18, 2, asdecimal=True), nullable=False, default=0)
    has_active_loan = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<MemberAccount {self.member_id}>"
