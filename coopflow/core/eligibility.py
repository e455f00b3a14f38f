"""Loan and withdrawal eligibility evaluation.

Computes whether a member may apply for a loan of a given amount and
tenure. The workflow engine consumes only the resulting assessment: an
admissible flag, the ceiling, and the product/tenure/amount triple.

Rules:
- The member's product tier is the active product with the highest
  ``min_total_contributions`` not exceeding their total contributions.
- Tenure must fall within the product's [min, max] month bounds.
- Amount may not exceed ``max_loan_based_on_salary_months`` × monthly salary.
- Savings must be at least ``required_savings_percentage`` % of the amount.
- A member with an active loan must keep saving
  ``required_savings_during_loan`` % of salary each month. This is
  surfaced as a warning and never blocks admission.

Withdrawals are admitted only up to the member's willing deposit balance,
the part of their deposits they have made available for withdrawal.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Mapping, Optional

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class LoanProduct:
    """A loan product tier."""
    name: str
    min_total_contributions: Decimal
    min_duration_months: int
    max_duration_months: int
    required_savings_percentage: Decimal
    required_savings_during_loan: Decimal
    max_loan_based_on_salary_months: int
    interest_rate: Decimal = Decimal("0")
    is_active: bool = True

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LoanProduct":
        return cls(
            name=data["name"],
            min_total_contributions=Decimal(str(data.get("min_total_contributions", "0"))),
            min_duration_months=int(data.get("min_duration_months", 1)),
            max_duration_months=int(data.get("max_duration_months", 120)),
            required_savings_percentage=Decimal(str(data.get("required_savings_percentage", "30"))),
            required_savings_during_loan=Decimal(str(data.get("required_savings_during_loan", "35"))),
            max_loan_based_on_salary_months=int(data.get("max_loan_based_on_salary_months", 30)),
            interest_rate=Decimal(str(data.get("interest_rate", "0"))),
            is_active=bool(data.get("is_active", True)),
        )


@dataclass(frozen=True)
class MemberFinancials:
    """Figures the eligibility rules are evaluated against."""
    member_id: str
    total_savings: Decimal
    total_contributions: Decimal
    monthly_salary: Decimal
    has_active_loan: bool = False
    willing_deposit_balance: Decimal = Decimal("0")


@dataclass
class EligibilityAssessment:
    """
    Outcome of evaluating a loan application against the product rules.
    """
    member_id: str
    amount: Decimal
    tenure_months: int
    product_name: Optional[str]
    admissible: bool
    max_amount: Decimal
    required_savings: Decimal = Decimal("0")
    required_monthly_savings_during_loan: Optional[Decimal] = None
    reasons: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    evaluated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-safe dictionary for storage on the request."""
        return {
            "member_id": self.member_id,
            "amount": str(self.amount),
            "tenure_months": self.tenure_months,
            "product_name": self.product_name,
            "admissible": self.admissible,
            "max_amount": str(self.max_amount),
            "required_savings": str(self.required_savings),
            "required_monthly_savings_during_loan": (
                str(self.required_monthly_savings_during_loan)
                if self.required_monthly_savings_during_loan is not None
                else None
            ),
            "reasons": list(self.reasons),
            "warnings": list(self.warnings),
            "evaluated_at": self.evaluated_at.isoformat(),
        }


@dataclass
class WithdrawalAssessment:
    """Outcome of checking a withdrawal against the willing deposit balance."""
    member_id: str
    amount: Decimal
    available_balance: Decimal
    admissible: bool
    reasons: List[str] = field(default_factory=list)
    evaluated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "member_id": self.member_id,
            "amount": str(self.amount),
            "available_balance": str(self.available_balance),
            "admissible": self.admissible,
            "reasons": list(self.reasons),
            "evaluated_at": self.evaluated_at.isoformat(),
        }


DEFAULT_LOAN_PRODUCTS: List[LoanProduct] = [
    LoanProduct(
        name="Basic",
        min_total_contributions=Decimal("0"),
        min_duration_months=1,
        max_duration_months=36,
        required_savings_percentage=Decimal("30"),
        required_savings_during_loan=Decimal("35"),
        max_loan_based_on_salary_months=12,
        interest_rate=Decimal("9.5"),
    ),
    LoanProduct(
        name="Standard",
        min_total_contributions=Decimal("50000"),
        min_duration_months=1,
        max_duration_months=60,
        required_savings_percentage=Decimal("25"),
        required_savings_during_loan=Decimal("35"),
        max_loan_based_on_salary_months=24,
        interest_rate=Decimal("9"),
    ),
    LoanProduct(
        name="Premium",
        min_total_contributions=Decimal("200000"),
        min_duration_months=1,
        max_duration_months=120,
        required_savings_percentage=Decimal("20"),
        required_savings_during_loan=Decimal("30"),
        max_loan_based_on_salary_months=30,
        interest_rate=Decimal("8.5"),
    ),
]


def load_products(config: Mapping[str, Any]) -> List[LoanProduct]:
    """Products from the ``loan_products`` section of a config mapping."""
    entries = config.get("loan_products")
    if not entries:
        return list(DEFAULT_LOAN_PRODUCTS)
    return [LoanProduct.from_dict(entry) for entry in entries]


def assign_product(products: Iterable[LoanProduct], total_contributions: Decimal) -> Optional[LoanProduct]:
    """Highest active tier whose contribution threshold the member meets."""
    qualifying = [
        p for p in products
        if p.is_active and p.min_total_contributions <= total_contributions
    ]
    if not qualifying:
        return None
    return max(qualifying, key=lambda p: p.min_total_contributions)


def assess_loan(
    member: MemberFinancials,
    products: Iterable[LoanProduct],
    amount: Decimal,
    tenure_months: int,
) -> EligibilityAssessment:
    """Evaluate a loan application.

    Args:
        member: The applicant's financial figures
        products: Available loan products
        amount: Requested amount
        tenure_months: Requested tenure

    Returns:
        EligibilityAssessment; ``admissible`` is False if any rule failed
    """
    product = assign_product(products, member.total_contributions)
    if product is None:
        return EligibilityAssessment(
            member_id=member.member_id,
            amount=amount,
            tenure_months=tenure_months,
            product_name=None,
            admissible=False,
            max_amount=Decimal("0"),
            reasons=["No loan product matches the member's total contributions"],
        )

    reasons = []
    warnings = []

    max_amount = _money(member.monthly_salary * product.max_loan_based_on_salary_months)
    required_savings = _money(amount * product.required_savings_percentage / HUNDRED)

    if amount <= 0:
        reasons.append("Loan amount must be positive")

    if not product.min_duration_months <= tenure_months <= product.max_duration_months:
        reasons.append(
            f"Tenure must be between {product.min_duration_months} and "
            f"{product.max_duration_months} months for {product.name}"
        )

    if amount > max_amount:
        reasons.append(
            f"Amount exceeds {max_amount} "
            f"({product.max_loan_based_on_salary_months} months of salary)"
        )

    if member.total_savings < required_savings:
        reasons.append(
            f"Savings of at least {required_savings} required "
            f"({product.required_savings_percentage}% of requested amount)"
        )

    required_monthly = None
    if member.has_active_loan:
        required_monthly = _money(member.monthly_salary * product.required_savings_during_loan / HUNDRED)
        warnings.append(
            f"Active loan: at least {required_monthly} per month "
            f"({product.required_savings_during_loan}% of salary) must be saved during the loan"
        )

    return EligibilityAssessment(
        member_id=member.member_id,
        amount=amount,
        tenure_months=tenure_months,
        product_name=product.name,
        admissible=not reasons,
        max_amount=max_amount,
        required_savings=required_savings,
        required_monthly_savings_during_loan=required_monthly,
        reasons=reasons,
        warnings=warnings,
    )


def assess_withdrawal(member: MemberFinancials, amount: Decimal) -> WithdrawalAssessment:
    """Check a withdrawal against the member's willing deposit balance."""
    reasons = []
    if amount <= 0:
        reasons.append("Withdrawal amount must be positive")
    if amount > member.willing_deposit_balance:
        reasons.append(
            f"Insufficient willing deposit balance: {member.willing_deposit_balance} available"
        )
    return WithdrawalAssessment(
        member_id=member.member_id,
        amount=amount,
        available_balance=member.willing_deposit_balance,
        admissible=not reasons,
        reasons=reasons,
    )
