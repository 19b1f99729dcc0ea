"""Closed tax-category vocabulary shared by every pipeline stage.

``Category`` member *names* are the stable keys sent to (and expected back
from) the AI classifier; member *values* are the display labels stored on
transactions and shown in reports. Rules, the Tier 1 heuristics, the AI
whitelist and response validation all read from this one enumeration, so a
category cannot exist in one stage and be missing from another.

Bump ``CATEGORY_SET_VERSION`` whenever members are added, renamed or removed;
the version is embedded in the AI prompt and in usage records.
"""

from __future__ import annotations

from enum import StrEnum

CATEGORY_SET_VERSION = "2025.1"


class Category(StrEnum):
    # Schedule C expense lines
    ADVERTISING = "Advertising"
    CAR_TRUCK_EXPENSES = "Car and Truck Expenses"
    COMMISSIONS_FEES = "Commissions and Fees"
    CONTRACT_LABOR = "Contract Labor"
    DEPLETION = "Depletion"
    DEPRECIATION = "Depreciation and Section 179"
    EMPLOYEE_BENEFITS = "Employee Benefit Programs"
    INSURANCE_OTHER = "Insurance (Other than Health)"
    INTEREST_MORTGAGE = "Interest (Mortgage)"
    INTEREST_OTHER = "Interest (Other)"
    LEGAL_PROFESSIONAL = "Legal and Professional Services"
    OFFICE_EXPENSES = "Office Expenses"
    PENSION_PROFIT_SHARING = "Pension and Profit-Sharing Plans"
    RENT_LEASE_VEHICLES = "Rent or Lease (Vehicles, Machinery, Equipment)"
    RENT_LEASE_OTHER = "Rent or Lease (Other Business Property)"
    REPAIRS_MAINTENANCE = "Repairs and Maintenance"
    SUPPLIES = "Supplies (Not Inventory)"
    TAXES_LICENSES = "Taxes and Licenses"
    TRAVEL = "Travel"
    MEALS = "Meals and Entertainment"
    UTILITIES = "Utilities"
    WAGES = "Wages (Less Employment Credits)"
    OTHER_EXPENSES = "Other Expenses"

    # Common business expense refinements
    SOFTWARE_SUBSCRIPTIONS = "Software Subscriptions"
    WEB_HOSTING = "Web Hosting"
    BANK_FEES = "Bank Service Charges"
    MATERIALS_SUPPLIES = "Materials and Supplies"
    TRAINING_EDUCATION = "Training and Education"
    DUES_MEMBERSHIPS = "Dues and Memberships"
    TOOLS_EQUIPMENT = "Tools and Equipment"
    COST_OF_GOODS_SOLD = "Cost of Goods Sold"

    # Payroll
    PAYROLL_TAXES = "Payroll Taxes"
    HEALTH_INSURANCE = "Health Insurance"
    RETIREMENT_CONTRIBUTIONS = "Retirement Contributions"

    # Income
    BUSINESS_INCOME = "Business Income"
    GROSS_RECEIPTS = "Gross Receipts or Sales"
    RETURNS_ALLOWANCES = "Returns and Allowances"
    OTHER_INCOME = "Other Income"

    # Non-business movements
    OWNER_DRAWS = "Owner Draws"
    PERSONAL_EXPENSE = "Personal Expense"
    PERSONAL_TRANSFER = "Personal Transfer"

    UNCATEGORIZED = "Uncategorized"


INCOME_CATEGORIES: frozenset[Category] = frozenset(
    {
        Category.BUSINESS_INCOME,
        Category.GROSS_RECEIPTS,
        Category.RETURNS_ALLOWANCES,
        Category.OTHER_INCOME,
    }
)

TRANSFER_CATEGORIES: frozenset[Category] = frozenset(
    {Category.OWNER_DRAWS, Category.PERSONAL_TRANSFER}
)

_BY_KEY: dict[str, Category] = {c.name.casefold(): c for c in Category}
_BY_LABEL: dict[str, Category] = {c.value.casefold(): c for c in Category}


def parse_category(raw: object) -> Category | None:
    """Resolve a key (``"BANK_FEES"``) or label (``"Bank Service Charges"``).

    Matching is case-insensitive and whitespace-trimmed. Anything outside the
    vocabulary returns ``None``; callers decide whether that means
    ``Uncategorized`` or a validation error.
    """

    if isinstance(raw, Category):
        return raw
    if not isinstance(raw, str):
        return None
    s = " ".join(raw.split()).casefold()
    if not s:
        return None
    return _BY_KEY.get(s) or _BY_LABEL.get(s)


def category_keys(*, include_uncategorized: bool = False) -> tuple[str, ...]:
    """Return member names in declaration order (the AI whitelist)."""

    return tuple(
        c.name for c in Category if include_uncategorized or c is not Category.UNCATEGORIZED
    )


__all__ = [
    "CATEGORY_SET_VERSION",
    "Category",
    "INCOME_CATEGORIES",
    "TRANSFER_CATEGORIES",
    "category_keys",
    "parse_category",
]
