# staking_system/services/ledger_service.py
"""
Ledger service - every balance delta goes through here and leaves a Transaction.
"""
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Session
import logging

from models import User, Transaction
from staking_system.errors import ConsistencyError, InsufficientBalanceError, NotFoundError, ValidationError
from staking_system.utils.money import Currency, ZERO, amountExceeds, settle, toDecimal

logger = logging.getLogger(__name__)

_BALANCE_FIELDS = {
    Currency.USDT: "walletBalance",
    Currency.BLS: "blsBalance",
}


class LedgerService:
    """Credits and debits participant balances in USDT or BLS."""

    def __init__(self, session: Session):
        self.session = session

    def lockUser(self, userId: int) -> User:
        """Load the freshest row of a participant and lock it for the current transaction."""
        user = (
            self.session.query(User)
            .filter_by(userID=userId)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if not user:
            raise NotFoundError(f"User {userId} not found")
        return user

    def hasKey(self, idempotencyKey: str) -> bool:
        return self.session.query(Transaction.transactionID).filter_by(
            idempotencyKey=idempotencyKey
        ).first() is not None

    def balanceOf(self, user: User, currency: Currency) -> Decimal:
        return settle(getattr(user, _BALANCE_FIELDS[currency]) or ZERO)

    def credit(
            self,
            user: User,
            amount: Decimal,
            currency: Currency,
            txType: str,
            reason: Optional[str] = None,
            notes: Optional[str] = None,
            idempotencyKey: Optional[str] = None
    ) -> Transaction:
        """Increase a balance. Zero credits are allowed (they still leave a record)."""
        amount = settle(toDecimal(amount))
        if amount < 0:
            raise ValidationError(f"Credit amount cannot be negative: {amount}")
        return self._apply(user, amount, currency, txType, reason, notes, idempotencyKey)

    def debit(
            self,
            user: User,
            amount: Decimal,
            currency: Currency,
            txType: str,
            reason: Optional[str] = None,
            notes: Optional[str] = None,
            idempotencyKey: Optional[str] = None
    ) -> Transaction:
        """Decrease a balance, refusing to go below zero."""
        amount = settle(toDecimal(amount))
        if amount <= 0:
            raise ValidationError(f"Debit amount must be positive: {amount}")

        balance = self.balanceOf(user, currency)
        if amountExceeds(amount, balance):
            raise InsufficientBalanceError(
                f"User {user.userID} has {balance} {currency.value}, needs {amount}"
            )
        return self._apply(user, -amount, currency, txType, reason, notes, idempotencyKey)

    def _apply(
            self,
            user: User,
            delta: Decimal,
            currency: Currency,
            txType: str,
            reason: Optional[str],
            notes: Optional[str],
            idempotencyKey: Optional[str]
    ) -> Transaction:
        if idempotencyKey and self.hasKey(idempotencyKey):
            raise ConsistencyError(
                f"Idempotency key {idempotencyKey} already used",
                userIds=[user.userID]
            )

        field = _BALANCE_FIELDS[currency]
        newBalance = settle(self.balanceOf(user, currency) + delta)
        if newBalance < 0:
            raise ConsistencyError(
                f"Balance of user {user.userID} would become {newBalance} {currency.value}",
                userIds=[user.userID]
            )
        setattr(user, field, newBalance)

        transaction = Transaction(
            userID=user.userID,
            amount=delta,
            currency=currency.value,
            balanceAfter=newBalance,
            type=txType,
            reason=reason,
            notes=notes,
            idempotencyKey=idempotencyKey
        )
        self.session.add(transaction)

        logger.debug(
            f"Ledger {txType}: user {user.userID} {delta:+} {currency.value} -> {newBalance}"
        )
        return transaction
