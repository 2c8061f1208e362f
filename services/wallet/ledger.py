"""
services/wallet/ledger.py
Wallet balance mutations. Every call updates the balance and appends one
Transaction row in the caller's session; callers own the commit.
"""

import logging
import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.models import Booking, Transaction, TransactionType, Wallet
from shared.utils.errors import InsufficientFunds, NotFoundError, ValidationError
from shared.utils.fees import Number, format_currency, to_money

logger = logging.getLogger(__name__)


async def get_wallet_for_user(
    db: AsyncSession,
    user_id: uuid.UUID,
    lock: bool = False,
) -> Wallet:
    """Load a user's wallet. lock=True takes a row lock until commit."""
    query = select(Wallet).where(Wallet.user_id == user_id)
    if lock:
        query = query.with_for_update()
    result = await db.execute(query)
    wallet = result.scalar_one_or_none()
    if not wallet:
        raise NotFoundError("Wallet not found")
    return wallet


def _positive(amount: Number) -> Decimal:
    value = to_money(amount)
    if value <= 0:
        raise ValidationError.for_field("amount", "Amount must be greater than zero")
    return value


async def _apply(
    db: AsyncSession,
    wallet: Wallet,
    delta: Decimal,
    tx_type: TransactionType,
    description: str,
    booking: Optional[Booking] = None,
) -> Transaction:
    wallet.balance = to_money(wallet.balance) + delta
    tx = Transaction(
        wallet_id=wallet.id,
        booking_id=booking.id if booking else None,
        type=tx_type,
        amount=abs(delta),
        description=description,
    )
    db.add(tx)
    await db.flush()
    logger.info(
        f"Ledger {tx_type.value} {format_currency(abs(delta), wallet.currency)} "
        f"wallet={wallet.id} balance={wallet.balance}"
    )
    return tx


def _ensure_covered(wallet: Wallet, value: Decimal) -> None:
    if value > to_money(wallet.balance):
        raise InsufficientFunds(
            f"Insufficient balance: {format_currency(wallet.balance, wallet.currency)} available, "
            f"{format_currency(value, wallet.currency)} required"
        )


async def deposit(
    db: AsyncSession,
    wallet: Wallet,
    amount: Number,
    description: Optional[str] = None,
) -> Transaction:
    value = _positive(amount)
    return await _apply(db, wallet, value, TransactionType.DEPOSIT, description or "Wallet deposit")


async def withdraw(
    db: AsyncSession,
    wallet: Wallet,
    amount: Number,
    description: Optional[str] = None,
) -> Transaction:
    """Debit the wallet. Raises InsufficientFunds without touching the balance."""
    value = _positive(amount)
    _ensure_covered(wallet, value)
    return await _apply(db, wallet, -value, TransactionType.WITHDRAWAL, description or "Wallet withdrawal")


async def record_payment(
    db: AsyncSession,
    wallet: Wallet,
    amount: Number,
    booking: Booking,
) -> Transaction:
    """Credit a tutor's earning for a completed booking."""
    value = _positive(amount)
    return await _apply(
        db, wallet, value, TransactionType.PAYMENT,
        f"Earning for {booking.subject_name} session", booking,
    )


async def hold_escrow(
    db: AsyncSession,
    wallet: Wallet,
    amount: Number,
    booking: Booking,
) -> Transaction:
    value = _positive(amount)
    _ensure_covered(wallet, value)
    return await _apply(
        db, wallet, -value, TransactionType.ESCROW_HOLD,
        f"Escrow for {booking.subject_name} session", booking,
    )


async def refund_escrow(
    db: AsyncSession,
    wallet: Wallet,
    amount: Number,
    booking: Booking,
) -> Transaction:
    value = _positive(amount)
    return await _apply(
        db, wallet, value, TransactionType.REFUND,
        f"Refund for {booking.subject_name} session", booking,
    )
