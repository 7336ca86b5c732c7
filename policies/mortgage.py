"""
Sample mortgage eligibility policy.

Thresholds are read from a NestedLookup keyed by
[page][mortgage type][parameter], e.g. lookup["Default"]["FTB"]["MinLoan"].
Every predicate awaits token.sleep() to stand in for an external check, so
an expired CancellationToken faults the rule.
"""

from typing import Any, List, Literal, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from rules_engine.builder import PolicyBuilder
from rules_engine.cancellation import CancellationToken
from rules_engine.lookup import NestedLookup
from rules_engine.models import Policy

POLICY_ID = "P001"
LOOKUP_PAGE = "Default"

# Mortgage types with threshold pages in the lookup
MortgageType = Literal["FTB", "BTL"]

DEFAULT_LOOKUP_ITEMS: List[Tuple[Sequence[str], Any]] = [
    # First Time Buyer rules
    (["Default", "FTB", "MinLoan"], 100_000),
    (["Default", "FTB", "MaxLoan"], 420_000),
    (["Default", "FTB", "MinApplicantAge"], 25),
    (["Default", "FTB", "MaxLTV"], 95.0),
    (["Default", "FTB", "MaxDSR"], 50),
    (["Default", "FTB", "AnnualInterestRate"], 0.0595),
    # Buy to Let rules
    (["Default", "BTL", "MinLoan"], 200_000),
    (["Default", "BTL", "MaxLoan"], 2_000_000),
    (["Default", "BTL", "MinApplicantAge"], 30),
    (["Default", "BTL", "MaxLTV"], 75.0),
    (["Default", "BTL", "MaxDSR"], 50),
    (["Default", "BTL", "AnnualInterestRate"], 0.0595),
]


class MortgageApplication(BaseModel):
    """A mortgage application evaluated by the loan policy."""

    applicant_age: int = Field(..., ge=0, description="Age of the applicant in years")
    mortgage_type: MortgageType = Field(..., description="Mortgage product code: First Time Buyer or Buy to Let")
    loan_amount: float = Field(..., gt=0, description="Requested loan amount")
    principal_amount: float = Field(..., ge=0, description="Deposit put down by the applicant")
    gross_income: float = Field(..., ge=0, description="Annual gross income")
    monthly_living_expenses: float = Field(..., ge=0)
    monthly_household_expenses: float = Field(..., ge=0)
    loan_term: int = Field(default=25, gt=0, description="Loan term in years")


def monthly_payment(rate: float, periods: int, principal: float) -> float:
    """
    Fixed payment per period that repays principal over periods at rate.

    Args:
        rate: Interest rate per period (e.g. annual rate / 12)
        periods: Number of payments
        principal: Amount borrowed
    """
    if rate == 0:
        return principal / periods
    return principal * rate / (1 - (1 + rate) ** -periods)


def loan_to_value(application: MortgageApplication) -> float:
    """Borrowed share of the loan amount, in percent."""
    return (application.loan_amount - application.principal_amount) / application.loan_amount * 100


def debt_service_ratio(application: MortgageApplication, annual_rate: float) -> float:
    """Monthly outgoings including the repayment as a percentage of monthly gross income."""
    repayment = monthly_payment(annual_rate / 12, application.loan_term * 12, application.loan_amount)
    # 2% annual stress allowance on the loan amount
    outgoings = (
        application.monthly_household_expenses
        + application.monthly_living_expenses
        + repayment
        + 0.02 * application.loan_amount / 12
    )
    return outgoings / (application.gross_income / 12) * 100


def get_lookup() -> NestedLookup:
    return NestedLookup.from_items(DEFAULT_LOOKUP_ITEMS)


def get_policy(lookup: Optional[NestedLookup] = None, latency: float = 0.02) -> Policy:
    """
    Build the loan policy.

    Args:
        lookup: Threshold table (default: DEFAULT_LOOKUP_ITEMS)
        latency: Seconds each rule waits on the cancellation token
    """
    lookup = lookup if lookup is not None else get_lookup()
    page = lookup[LOOKUP_PAGE]

    async def known_mortgage_type(request: MortgageApplication, token: CancellationToken) -> bool:
        await token.sleep(latency)
        return page.is_defined(request.mortgage_type)

    async def min_age(request: MortgageApplication, token: CancellationToken) -> bool:
        await token.sleep(latency)
        return request.applicant_age >= page[request.mortgage_type]["MinApplicantAge"].as_int()

    async def min_loan_amount(request: MortgageApplication, token: CancellationToken) -> bool:
        await token.sleep(latency)
        return request.loan_amount >= page[request.mortgage_type]["MinLoan"].as_int()

    async def max_loan_amount(request: MortgageApplication, token: CancellationToken) -> bool:
        await token.sleep(latency)
        return request.loan_amount <= page[request.mortgage_type]["MaxLoan"].as_int()

    async def ltv(request: MortgageApplication, token: CancellationToken) -> bool:
        await token.sleep(latency)
        return loan_to_value(request) <= page[request.mortgage_type]["MaxLTV"].as_float()

    async def dsr(request: MortgageApplication, token: CancellationToken) -> bool:
        await token.sleep(latency)
        thresholds = page[request.mortgage_type]
        ratio = debt_service_ratio(request, thresholds["AnnualInterestRate"].as_float())
        return ratio <= thresholds["MaxDSR"].as_int()

    def ltv_message(r: MortgageApplication) -> str:
        max_ltv = page[r.mortgage_type]["MaxLTV"].as_float()
        return (
            f"The LTV ratio [{loan_to_value(r):.2f}] is above the maximum [{max_ltv}]. "
            f"Either increase the principal {r.principal_amount} or lower the loan amount {r.loan_amount}"
        )

    def dsr_message(r: MortgageApplication) -> str:
        thresholds = page[r.mortgage_type]
        ratio = debt_service_ratio(r, thresholds["AnnualInterestRate"].as_float())
        return (
            f"The DSR ratio [{ratio:.2f}] is above the maximum [{thresholds['MaxDSR'].as_int()}]. "
            f"Either increase applicant monthly salary or reduce applicant monthly expenditures"
        )

    return (
        PolicyBuilder()
        .with_id(POLICY_ID)
        .with_name("LoanPolicy")
        .with_description("Simple loan policy")
        .with_rule(
            "MA001",
            "KnownMortgageType",
            known_mortgage_type,
            description="Checks the mortgage type",
            failure_message=lambda r: f"The mortgage_type [{r.mortgage_type}] is not known.",
        )
        .with_rule(
            "MA002",
            "MinAgeCheck",
            min_age,
            description="Minimum age of the applicant",
            failure_message=lambda r: f"The applicant_age [{r.applicant_age}] is too young.",
        )
        .with_rule(
            "MA003",
            "MinLoanAmount",
            min_loan_amount,
            description="Minimum loan amount check",
            failure_message=lambda r: f"The loan_amount [{r.loan_amount}] is too small.",
        )
        .with_rule(
            "MA004",
            "MaxLoanAmount",
            max_loan_amount,
            description="Maximum loan amount check",
            failure_message=lambda r: f"The loan_amount [{r.loan_amount}] is too large.",
        )
        .with_rule(
            "MA005",
            "LTV",
            ltv,
            description="Loan-To-Value ratio must not exceed the maximum for the mortgage type",
            failure_message=ltv_message,
        )
        .with_rule(
            "MA006",
            "DSR",
            dsr,
            description="Debt-Service ratio must be below threshold so applicant can handle monthly loan commitments",
            failure_message=dsr_message,
        )
        .build()
    )
