"""Construction of canonical ``Transaction`` records from parsed source rows.

Both the CSV and PDF parsers funnel through :func:`make_transaction` so the
type precedence, sign alignment, check handling and payee rule are applied in
exactly one place.
"""

from __future__ import annotations

from decimal import Decimal

from ..models import (
    PaymentMethod,
    Transaction,
    TransactionType,
    align_amount_sign,
    resolve_transaction_type,
)
from ..rules import extract_payee
from .utils import extract_check_number, is_deposit_slip, map_bank_type_to_payment_method


def make_transaction(
    *,
    date: str | None,
    description: str,
    amount: Decimal,
    explicit_type: object = None,
    type_hint: TransactionType | None = None,
    bank_type: str | None = None,
    check_number: str | None = None,
    payment_method: PaymentMethod | None = None,
    section: str | None = None,
    row_number: int | None = None,
    parse_issue: str | None = None,
) -> Transaction:
    """Build an unclassified canonical transaction.

    ``amount`` is the value as parsed from the source; its sign is aligned to
    the resolved type once, here. Deposit slips never carry a check number,
    and checks never carry a payee.
    """

    desc = " ".join((description or "").split())
    tx_type = resolve_transaction_type(explicit=explicit_type, source_hint=type_hint, amount=amount)
    signed = align_amount_sign(amount, tx_type)

    check = (check_number or "").strip() or extract_check_number(desc)
    if is_deposit_slip(bank_type):
        check = None

    if payment_method is None:
        if bank_type:
            payment_method = map_bank_type_to_payment_method(bank_type)
        elif check:
            payment_method = PaymentMethod.CHECK
    payee = None if check and tx_type is not TransactionType.INCOME else extract_payee(desc)

    return Transaction(
        id=None,
        date=date,
        description=desc,
        amount=signed,
        type=tx_type,
        needs_review=True,
        payee=payee,
        check_number=check or None,
        payment_method=payment_method,
        bank_type=bank_type or None,
        section=section,
        row_number=row_number,
        parse_issue=parse_issue,
    )


__all__ = ["make_transaction"]
