"""Known bank CSV export profiles and header-based auto-detection.

A profile lists the headers that must all be present (``signature``), extra
headers that make the match more specific (``hints``), candidate column names
for each canonical field, the date formats the bank uses, and how amounts are
laid out:

- ``signed``: one amount column, negative for outflows (``invert_sign`` for
  card exports that list purchases as positive numbers);
- ``split``: separate debit and credit columns.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Literal, TypeAlias

from ..models import TransactionType

AmountStyle: TypeAlias = Literal["signed", "split"]


@dataclass(frozen=True, slots=True)
class BankProfile:
    key: str
    name: str
    signature: frozenset[str]
    columns: Mapping[str, tuple[str, ...]]
    date_formats: tuple[str, ...] = ("%m/%d/%Y",)
    amount_style: AmountStyle = "signed"
    invert_sign: bool = False
    hints: frozenset[str] = field(default_factory=frozenset)

    def score(self, headers: Iterable[str]) -> int | None:
        """Return a specificity score, or ``None`` when the signature is incomplete."""

        present = set(headers)
        if not self.signature <= present:
            return None
        return len(self.signature) + len(self.hints & present)

    def column(self, name: str) -> tuple[str, ...]:
        return self.columns.get(name, ())


def _profile(
    key: str,
    name: str,
    signature: Iterable[str],
    columns: Mapping[str, tuple[str, ...]],
    **kw,
) -> BankProfile:
    hints = frozenset(kw.pop("hints", ()))
    return BankProfile(
        key=key, name=name, signature=frozenset(signature), columns=columns, hints=hints, **kw
    )


BANK_PROFILES: tuple[BankProfile, ...] = (
    _profile(
        "chase",
        "Chase Bank",
        ("Posting Date", "Description", "Amount"),
        {
            "date": ("Posting Date", "Transaction Date"),
            "description": ("Description",),
            "amount": ("Amount",),
            "direction": ("Details",),
            "type": ("Type",),
            "check_number": ("Check or Slip #",),
        },
        date_formats=("%m/%d/%Y",),
        hints=("Details", "Type", "Balance", "Check or Slip #"),
    ),
    _profile(
        "chase_card",
        "Chase Credit Card",
        ("Transaction Date", "Post Date", "Description", "Amount"),
        {
            "date": ("Transaction Date", "Post Date"),
            "description": ("Description",),
            "amount": ("Amount",),
            "type": ("Type",),
        },
        date_formats=("%m/%d/%Y",),
        hints=("Category", "Type", "Memo"),
    ),
    _profile(
        "bank_of_america",
        "Bank of America",
        ("Date", "Description", "Amount"),
        {
            "date": ("Date", "Posted Date"),
            "description": ("Description", "Payee"),
            "amount": ("Amount",),
            "reference": ("Reference Number",),
        },
        date_formats=("%m/%d/%Y",),
        hints=("Running Bal.", "Reference Number"),
    ),
    _profile(
        "wells_fargo",
        "Wells Fargo",
        ("Date", "Amount"),
        {
            "date": ("Date",),
            "description": ("Description", "Memo"),
            "amount": ("Amount",),
            "check_number": ("Check Number",),
        },
        date_formats=("%m/%d/%Y",),
        hints=("Check Number",),
    ),
    _profile(
        "capital_one",
        "Capital One",
        ("Transaction Date", "Debit", "Credit"),
        {
            "date": ("Transaction Date", "Posted Date"),
            "description": ("Description", "Transaction Description"),
            "debit": ("Debit",),
            "credit": ("Credit",),
        },
        date_formats=("%Y-%m-%d", "%m/%d/%Y"),
        amount_style="split",
        hints=("Posted Date", "Card No.", "Category"),
    ),
    _profile(
        "discover",
        "Discover",
        ("Trans. Date", "Amount"),
        {
            "date": ("Trans. Date", "Post Date"),
            "description": ("Description",),
            "amount": ("Amount",),
        },
        date_formats=("%m/%d/%Y",),
        invert_sign=True,
        hints=("Post Date", "Description", "Category"),
    ),
    _profile(
        "us_bank",
        "US Bank",
        ("Date", "Name", "Amount"),
        {
            "date": ("Date",),
            "description": ("Name", "Memo"),
            "amount": ("Amount",),
            "direction": ("Transaction",),
        },
        date_formats=("%m/%d/%Y", "%Y-%m-%d"),
        hints=("Transaction", "Memo"),
    ),
    _profile(
        "citi",
        "Citibank",
        ("Date", "Description", "Debit", "Credit"),
        {
            "date": ("Date",),
            "description": ("Description",),
            "debit": ("Debit",),
            "credit": ("Credit",),
        },
        date_formats=("%m/%d/%Y",),
        amount_style="split",
        hints=("Status",),
    ),
    _profile(
        "pnc",
        "PNC Bank",
        ("Date", "Description", "Withdrawals"),
        {
            "date": ("Date",),
            "description": ("Description",),
            "debit": ("Withdrawals",),
            "credit": ("Deposits",),
        },
        date_formats=("%m/%d/%Y",),
        amount_style="split",
        hints=("Deposits", "Balance"),
    ),
    _profile(
        "amex",
        "American Express",
        ("Date", "Description", "Amount"),
        {
            "date": ("Date",),
            "description": ("Description",),
            "amount": ("Amount",),
            "reference": ("Reference",),
        },
        date_formats=("%m/%d/%Y", "%m/%d/%y"),
        invert_sign=True,
        hints=(
            "Reference",
            "Card Member",
            "Account #",
            "Extended Details",
            "Appears On Your Statement As",
        ),
    ),
)

_BY_KEY: dict[str, BankProfile] = {p.key: p for p in BANK_PROFILES}


def get_profile(key: str) -> BankProfile | None:
    return _BY_KEY.get(key.strip().lower().replace(" ", "_").replace("-", "_"))


def detect_bank_format(headers: Iterable[str]) -> BankProfile | None:
    """Pick the most specific profile whose signature headers are all present.

    Ties keep declaration order. Returns ``None`` when nothing matches.
    """

    header_list = [h.strip() for h in headers if h and h.strip()]
    best: BankProfile | None = None
    best_score = -1
    for profile in BANK_PROFILES:
        s = profile.score(header_list)
        if s is not None and s > best_score:
            best, best_score = profile, s
    return best


def get_supported_banks() -> list[dict[str, str]]:
    return [{"key": p.key, "name": p.name} for p in BANK_PROFILES]


# ---------------------------------------------------------------------------
# Direction hints from bank type/detail codes
# ---------------------------------------------------------------------------

_EXACT_TYPE_HINTS: dict[str, TransactionType] = {
    "CREDIT": TransactionType.INCOME,
    "DSLIP": TransactionType.INCOME,
    "DEBIT": TransactionType.EXPENSE,
    "CHECK": TransactionType.EXPENSE,
    # Card exports
    "SALE": TransactionType.EXPENSE,
    "RETURN": TransactionType.INCOME,
    "PAYMENT": TransactionType.TRANSFER,
}

# Checked in order; the first substring hit wins.
_SUBSTRING_TYPE_HINTS: tuple[tuple[str, TransactionType], ...] = (
    ("XFER", TransactionType.TRANSFER),
    ("TRANSFER", TransactionType.TRANSFER),
    ("DEPOSIT", TransactionType.INCOME),
    ("INCOMING", TransactionType.INCOME),
    ("CREDIT", TransactionType.INCOME),
    ("OUTGOING", TransactionType.EXPENSE),
    ("DEBIT", TransactionType.EXPENSE),
    ("CHECK_PAID", TransactionType.EXPENSE),
    ("BILLPAY", TransactionType.EXPENSE),
    ("FEE", TransactionType.EXPENSE),
    ("LOAN_PMT", TransactionType.EXPENSE),
    ("ATM", TransactionType.EXPENSE),
)


def type_hint_from_code(code: str | None) -> TransactionType | None:
    """Translate a bank's detail/type code (``ACH_CREDIT``, ``DSLIP``...)."""

    if not code:
        return None
    c = code.strip().upper().replace(" ", "_")
    if c in _EXACT_TYPE_HINTS:
        return _EXACT_TYPE_HINTS[c]
    for token, hint in _SUBSTRING_TYPE_HINTS:
        if token in c:
            return hint
    return None


__all__ = [
    "BANK_PROFILES",
    "AmountStyle",
    "BankProfile",
    "detect_bank_format",
    "get_profile",
    "get_supported_banks",
    "type_hint_from_code",
]
