"""
services/booking/escrow.py
Moves booking money through the wallet ledger.

Creation debits the student (ESCROW_HOLD). Rejection or cancellation
refunds the student; completion credits the tutor's earning. The platform
fee stays with the platform. Escrow leaves HELD at most once.
"""

import logging
import uuid
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from services.wallet import ledger
from shared.models.models import (
    Booking,
    BookingStatus,
    EscrowStatus,
    StudentProfile,
    Transaction,
    TutorProfile,
)
from shared.utils.errors import NotFoundError

logger = logging.getLogger(__name__)

ESCROW_OUTCOMES: Dict[BookingStatus, EscrowStatus] = {
    BookingStatus.REJECTED: EscrowStatus.REFUNDED,
    BookingStatus.CANCELLED: EscrowStatus.REFUNDED,
    BookingStatus.COMPLETED: EscrowStatus.RELEASED,
}


def status_value(booking: Booking) -> str:
    return EscrowStatus(booking.escrow_status).value


async def _student_user_id(db: AsyncSession, booking: Booking) -> uuid.UUID:
    user_id = await db.scalar(
        select(StudentProfile.user_id).where(StudentProfile.id == booking.student_id)
    )
    if user_id is None:
        raise NotFoundError("Student not found")
    return user_id


async def _tutor_user_id(db: AsyncSession, booking: Booking) -> uuid.UUID:
    user_id = await db.scalar(
        select(TutorProfile.user_id).where(TutorProfile.id == booking.tutor_id)
    )
    if user_id is None:
        raise NotFoundError("Tutor not found")
    return user_id


async def hold(db: AsyncSession, booking: Booking, student_user_id: uuid.UUID) -> Transaction:
    """
    Debit the student's wallet for a new booking. The booking must already
    be flushed so the transaction can reference it.
    """
    wallet = await ledger.get_wallet_for_user(db, student_user_id, lock=True)
    tx = await ledger.hold_escrow(db, wallet, booking.total_amount, booking)
    booking.escrow_status = EscrowStatus.HELD
    return tx


async def settle(db: AsyncSession, booking: Booking) -> Optional[Transaction]:
    """
    Release or refund held funds according to the booking's new status.
    No-op for non-terminal statuses and for escrow that has already moved.
    """
    outcome = ESCROW_OUTCOMES.get(BookingStatus(booking.status))
    if outcome is None or booking.escrow_status != EscrowStatus.HELD:
        return None

    tx = None
    if outcome == EscrowStatus.REFUNDED:
        wallet = await ledger.get_wallet_for_user(db, await _student_user_id(db, booking), lock=True)
        tx = await ledger.refund_escrow(db, wallet, booking.total_amount, booking)
    elif booking.tutor_earning > 0:
        wallet = await ledger.get_wallet_for_user(db, await _tutor_user_id(db, booking), lock=True)
        tx = await ledger.record_payment(db, wallet, booking.tutor_earning, booking)

    booking.escrow_status = outcome
    logger.info(f"Escrow for booking {booking.id} {outcome.value}")
    return tx
