"""
Account Ledger Module

Posts deposits, withdrawals and interest. Each posting updates the account
balance and appends one immutable transaction inside a single storage unit of
work, under the account's lock, so the stored balance always equals the fold
of the transaction log and the latest ``balance_after``.
"""

from datetime import datetime
from dataclasses import dataclass
from typing import List, Optional
import uuid

from .accounts import AccountManager
from .audit import AuditTrail, AuditEventType
from .clock import Clock, SystemClock
from .exceptions import InsufficientFunds, InvalidAmount, InvalidTimestamp
from .logging_config import get_logger, log_action
from .models import Account, Transaction, TransactionKind
from .money import MAX_AMOUNT, AmountLike, Money, parse_amount
from .store import LedgerStore


_POSTED_EVENTS = {
    TransactionKind.DEPOSIT: AuditEventType.DEPOSIT_POSTED,
    TransactionKind.WITHDRAWAL: AuditEventType.WITHDRAWAL_POSTED,
    TransactionKind.INTEREST: AuditEventType.INTEREST_POSTED,
}


@dataclass
class ReconciliationResult:
    """Stored balance compared with what the transaction log says"""
    account_id: str
    stored_balance: Money
    computed_balance: Money
    last_balance_after: Optional[Money]
    transaction_count: int

    @property
    def is_consistent(self) -> bool:
        if self.stored_balance != self.computed_balance:
            return False
        if self.last_balance_after is None:
            return self.stored_balance.is_zero()
        return self.last_balance_after == self.stored_balance


class AccountLedger:
    """
    Enforces balance invariants for every money movement
    """

    def __init__(
        self,
        store: LedgerStore,
        account_manager: AccountManager,
        audit_trail: Optional[AuditTrail] = None,
        clock: Optional[Clock] = None
    ):
        self.store = store
        self.account_manager = account_manager
        self.audit_trail = audit_trail
        self.clock = clock or SystemClock()
        self.locks = account_manager.locks
        self.logger = get_logger("piggybank.ledger")

    def deposit(
        self,
        account_id: str,
        amount: AmountLike,
        note: Optional[str] = None,
        timestamp: Optional[datetime] = None
    ) -> Transaction:
        """
        Deposit money into an account

        Args:
            account_id: Account ID
            amount: Positive amount; rounded half away from zero to the cent
            note: Optional description stored on the transaction
            timestamp: Transaction time (defaults to now), never before the
                latest existing transaction

        Returns:
            The created deposit transaction

        Raises:
            InvalidAmount: Non-positive, sub-cent or too large amount, or the
                resulting balance would exceed MAX_AMOUNT
            AccountNotFound, InvalidTimestamp, StorageFailure
        """
        raw_amount = parse_amount(amount)
        self._check_timestamp_shape(timestamp)

        with self.locks.hold(account_id):
            with self.store.atomic():
                account = self.account_manager.require_account(account_id)
                money = Money(raw_amount)
                new_balance = account.balance + money
                if new_balance.amount > MAX_AMOUNT:
                    raise InvalidAmount(f"Deposit would take the balance above {MAX_AMOUNT}")
                transaction = self._post(account, TransactionKind.DEPOSIT, money, new_balance, note, timestamp)

        self._log_posted(account.name, transaction)
        return transaction

    def withdraw(
        self,
        account_id: str,
        amount: AmountLike,
        note: Optional[str] = None,
        timestamp: Optional[datetime] = None
    ) -> Transaction:
        """
        Withdraw money from an account

        The sufficiency check compares the unrounded amount with the current
        balance, so 30.004 cannot be taken from 30.00.

        Raises:
            InvalidAmount, AccountNotFound, InsufficientFunds, InvalidTimestamp,
            StorageFailure
        """
        raw_amount = parse_amount(amount)
        self._check_timestamp_shape(timestamp)

        with self.locks.hold(account_id):
            with self.store.atomic():
                account = self.account_manager.require_account(account_id)
                if raw_amount > account.balance.amount:
                    raise InsufficientFunds(account_id, account.balance, Money(raw_amount))

                money = Money(raw_amount)
                new_balance = account.balance - money
                transaction = self._post(account, TransactionKind.WITHDRAWAL, money, new_balance, note, timestamp)

        self._log_posted(account.name, transaction)
        return transaction

    def apply_interest(self, account_id: str, period: datetime) -> Optional[Transaction]:
        """
        Credit one period of interest

        Only the accrual engine should call this: the amount is computed here,
        not supplied by the caller.

        Returns None without writing anything when the period was already
        applied, or when ``round2(balance * rate)`` is zero (zero balance, zero
        rate, or interest below half a cent). ``last_interest_applied_at`` only
        moves when a transaction is created.
        """
        with self.locks.hold(account_id):
            with self.store.atomic():
                account = self.account_manager.require_account(account_id)

                if account.last_interest_applied_at and period <= account.last_interest_applied_at:
                    return None

                interest = account.balance * account.interest_rate
                if not interest.is_positive():
                    return None

                new_balance = account.balance + interest
                account.last_interest_applied_at = period
                note = f"Weekly interest at {account.interest_rate * 100:.2f}% for {period.date().isoformat()}"
                transaction = self._post(account, TransactionKind.INTEREST, interest, new_balance, note, None,
                                         period=period)

        self._log_posted(account.name, transaction)
        return transaction

    def get_transaction_history(self, account_id: str) -> List[Transaction]:
        """Transactions of an account, newest first"""
        self.account_manager.require_account(account_id)
        return self.store.list_transactions(account_id)

    def computed_balance(self, account_id: str) -> Money:
        """Balance as the fold of the transaction log in chronological order"""
        self.account_manager.require_account(account_id)
        balance = Money.zero()
        for transaction in reversed(self.store.list_transactions(account_id)):
            balance = balance + transaction.signed_amount
        return balance

    def reconcile(self, account_id: str) -> ReconciliationResult:
        """Compare stored balance, folded balance and the latest snapshot"""
        with self.locks.hold(account_id):
            account = self.account_manager.require_account(account_id)
            transactions = self.store.list_transactions(account_id)

        balance = Money.zero()
        for transaction in reversed(transactions):
            balance = balance + transaction.signed_amount

        return ReconciliationResult(
            account_id=account_id,
            stored_balance=account.balance,
            computed_balance=balance,
            last_balance_after=transactions[0].balance_after if transactions else None,
            transaction_count=len(transactions)
        )

    @staticmethod
    def _check_timestamp_shape(timestamp: Optional[datetime]) -> None:
        if timestamp is not None and timestamp.tzinfo is None:
            raise InvalidTimestamp("Transaction timestamp must be timezone-aware")

    def _post(
        self,
        account: Account,
        kind: TransactionKind,
        amount: Money,
        new_balance: Money,
        note: Optional[str],
        timestamp: Optional[datetime],
        period: Optional[datetime] = None
    ) -> Transaction:
        """Write the balance and the transaction; caller holds lock and unit of work"""
        latest = self.store.latest_transaction(account.id)

        now = self.clock.now()
        if timestamp is None:
            # Keep the log ordered even if the clock steps backwards
            timestamp = max(now, latest.timestamp) if latest else now
        elif latest and timestamp < latest.timestamp:
            raise InvalidTimestamp(
                f"Timestamp {timestamp.isoformat()} precedes latest transaction "
                f"at {latest.timestamp.isoformat()}"
            )

        transaction = Transaction(
            id=str(uuid.uuid4()),
            account_id=account.id,
            kind=kind,
            amount=amount,
            balance_after=new_balance,
            timestamp=timestamp,
            sequence=latest.sequence + 1 if latest else 0,
            note=note
        )

        account.balance = new_balance
        account.updated_at = now
        self.store.put_account(account)
        self.store.append_transaction(transaction)

        if self.audit_trail:
            metadata = {
                "transaction_id": transaction.id,
                "amount": amount.to_string(),
                "balance_after": new_balance.to_string(),
            }
            if period is not None:
                metadata["period"] = period
            self.audit_trail.log_event(
                event_type=_POSTED_EVENTS[kind],
                entity_type="account",
                entity_id=account.id,
                metadata=metadata,
                timestamp=now
            )

        return transaction

    def _log_posted(self, account_name: str, transaction: Transaction) -> None:
        log_action(
            self.logger, "info",
            f"{transaction.kind.value.capitalize()} of {transaction.amount} posted for {account_name}",
            action=f"post_{transaction.kind.value}", resource=f"account:{transaction.account_id}",
            extra={
                "transaction_id": transaction.id,
                "amount": str(transaction.amount.amount),
                "balance_after": str(transaction.balance_after.amount),
            }
        )
