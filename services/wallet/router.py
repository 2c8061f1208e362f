"""
services/wallet/router.py
Wallet balance, transaction history, deposits and withdrawals.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from services.wallet import ledger
from shared.middleware.auth import get_current_user
from shared.models.models import Transaction, TransactionType, User
from shared.schemas.schemas import (
    DepositRequest,
    TransactionListResponse,
    TransactionResponse,
    WalletResponse,
    WithdrawRequest,
)

router = APIRouter(prefix="/wallet", tags=["Wallet"])


@router.get("", response_model=WalletResponse)
async def get_wallet(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Balance plus the 20 most recent transactions."""
    wallet = await ledger.get_wallet_for_user(db, current_user.id)
    result = await db.execute(
        select(Transaction)
        .where(Transaction.wallet_id == wallet.id)
        .order_by(Transaction.created_at.desc())
        .limit(20)
    )
    return WalletResponse(
        id=wallet.id,
        balance=wallet.balance,
        currency=wallet.currency,
        transactions=[TransactionResponse.model_validate(t) for t in result.scalars().all()],
    )


@router.get("/transactions", response_model=TransactionListResponse)
async def list_transactions(
    type: Optional[TransactionType] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    wallet = await ledger.get_wallet_for_user(db, current_user.id)
    query = select(Transaction).where(Transaction.wallet_id == wallet.id)
    if type:
        query = query.where(Transaction.type == type)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()
    result = await db.execute(
        query.order_by(Transaction.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return TransactionListResponse(
        items=[TransactionResponse.model_validate(t) for t in result.scalars().all()],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.post("/deposit", response_model=TransactionResponse)
async def deposit(
    data: DepositRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Credit the wallet. The payment provider confirmation is out of band;
    the amount is booked as soon as the request is accepted.
    """
    wallet = await ledger.get_wallet_for_user(db, current_user.id, lock=True)
    tx = await ledger.deposit(
        db, wallet, data.amount, description=f"Deposit via {data.payment_method}"
    )
    await db.commit()
    return TransactionResponse.model_validate(tx)


@router.post("/withdraw", response_model=TransactionResponse)
async def withdraw(
    data: WithdrawRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    wallet = await ledger.get_wallet_for_user(db, current_user.id, lock=True)
    tx = await ledger.withdraw(
        db,
        wallet,
        data.amount,
        description=f"Withdrawal to {data.payment_method} ****{data.account_number[-4:]}",
    )
    await db.commit()
    return TransactionResponse.model_validate(tx)
