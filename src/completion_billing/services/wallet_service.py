"""Wallet balances."""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from completion_billing.config import get_settings
from completion_billing.errors import NotFoundError, ValidationError
from completion_billing.models import Transaction, Wallet
from completion_billing.services.locking_service import EntityLockRegistry, entity_locks
from completion_billing.services.persistence import flush_changes

logger = logging.getLogger(__name__)

USER_TYPES = ("freelancer", "commissioner")


class WalletService:
    """Reads and credits user wallets.

    Every credit is a read-modify-write on the freshly loaded row, held
    under the wallet's lock, so credits from different projects to the
    same user add up instead of overwriting each other.
    """

    def __init__(self, session: AsyncSession, locks: EntityLockRegistry | None = None):
        self.session = session
        self.locks = locks if locks is not None else entity_locks

    async def get(self, user_id: int, user_type: str) -> Wallet | None:
        _validate_user_type(user_type)
        result = await self.session.execute(
            select(Wallet)
            .where(Wallet.user_id == user_id, Wallet.user_type == user_type)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def require(self, user_id: int, user_type: str) -> Wallet:
        wallet = await self.get(user_id, user_type)
        if wallet is None:
            raise NotFoundError(
                "WalletNotFound", f"No wallet for {user_type} {user_id}"
            )
        return wallet

    async def credit(self, user_id: int, user_type: str, amount: Decimal) -> Wallet:
        """Add an amount to a wallet's balance and lifetime earnings.

        Creates the wallet on first payment.
        """
        if amount < 0:
            raise ValidationError(detail=f"Cannot credit a negative amount: {amount}")

        async with self.locks.hold("wallet", user_type, user_id):
            wallet = await self.get(user_id, user_type)
            if wallet is None:
                wallet = await self._create(user_id, user_type)
            before = wallet.available_balance
            wallet.available_balance = wallet.available_balance + amount
            wallet.lifetime_earnings = wallet.lifetime_earnings + amount
            await flush_changes(self.session, f"Wallet of {user_type} {user_id}")

        logger.info(
            "Wallet %s %s credited %s: %s -> %s",
            user_type,
            user_id,
            amount,
            before,
            wallet.available_balance,
        )
        return wallet

    async def transaction_total(self, payee_id: int) -> Decimal:
        """Sum of all transactions paid to a user."""
        result = await self.session.execute(
            select(func.coalesce(func.sum(Transaction.amount), 0)).where(
                Transaction.payee_id == payee_id
            )
        )
        return Decimal(str(result.scalar_one()))

    async def _create(self, user_id: int, user_type: str) -> Wallet:
        wallet = Wallet(
            user_id=user_id,
            user_type=user_type,
            currency=get_settings().currency,
            available_balance=Decimal("0"),
            lifetime_earnings=Decimal("0"),
        )
        try:
            async with self.session.begin_nested():
                self.session.add(wallet)
        except IntegrityError:
            # Another process created it first
            existing = await self.get(user_id, user_type)
            if existing is None:
                raise
            return existing
        logger.info("Created wallet for %s %s", user_type, user_id)
        return wallet


def _validate_user_type(user_type: str) -> None:
    if user_type not in USER_TYPES:
        raise ValidationError(detail=f"Unknown user type '{user_type}'")
