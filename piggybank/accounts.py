"""
Account Management Module

Creates child savings accounts, updates their interest rate and owns the
per-account lock registry that serialises every balance read-modify-write.
"""

from decimal import Decimal, InvalidOperation
from contextlib import contextmanager
from typing import Dict, List, Optional
import threading
import uuid

from .audit import AuditTrail, AuditEventType
from .clock import Clock, SystemClock
from .exceptions import AccountNotFound, InvalidAccountName, InvalidRate
from .logging_config import get_logger, log_action
from .models import Account
from .money import MAX_RATE, Money
from .store import LedgerStore


class AccountLocks:
    """
    One mutex per account id

    Operations on the same account are serialised; operations on different
    accounts never wait for each other.
    """

    def __init__(self):
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, account_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(account_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[account_id] = lock
            return lock

    @contextmanager
    def hold(self, account_id: str):
        lock = self._lock_for(account_id)
        with lock:
            yield


class AccountManager:
    """
    Manages account lifecycle and interest rate changes
    """

    def __init__(
        self,
        store: LedgerStore,
        audit_trail: Optional[AuditTrail] = None,
        clock: Optional[Clock] = None,
        locks: Optional[AccountLocks] = None
    ):
        self.store = store
        self.audit_trail = audit_trail
        self.clock = clock or SystemClock()
        self.locks = locks or AccountLocks()
        self.logger = get_logger("piggybank.accounts")

    def create_account(self, name: str) -> Account:
        """
        Create a new account for a child with zero balance and zero rate

        Raises:
            InvalidAccountName: If the name is missing or blank
        """
        if not isinstance(name, str) or not name.strip():
            raise InvalidAccountName("Child name is required and must be a non-empty string")

        now = self.clock.now()
        account = Account(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            name=name.strip(),
            balance=Money.zero(),
            interest_rate=Decimal('0')
        )

        with self.store.atomic():
            self.store.create_account(account)
            if self.audit_trail:
                self.audit_trail.log_event(
                    event_type=AuditEventType.ACCOUNT_CREATED,
                    entity_type="account",
                    entity_id=account.id,
                    metadata={"name": account.name},
                    timestamp=now
                )

        log_action(
            self.logger, "info", f"Account created for {account.name}",
            action="create_account", resource=f"account:{account.id}"
        )
        return account

    def get_account(self, account_id: str) -> Optional[Account]:
        """Get account by ID"""
        if not account_id:
            return None
        return self.store.get_account(account_id)

    def require_account(self, account_id: str) -> Account:
        """Get account by ID or raise AccountNotFound"""
        account = self.get_account(account_id)
        if account is None:
            raise AccountNotFound(account_id)
        return account

    def list_accounts(self) -> List[Account]:
        """All accounts in creation order"""
        return self.store.list_accounts()

    def find_account_by_name(self, name: str) -> Optional[Account]:
        """Case-insensitive lookup by child name"""
        wanted = name.strip().lower()
        for account in self.store.list_accounts():
            if account.name.lower() == wanted:
                return account
        return None

    def update_interest_rate(self, account_id: str, rate) -> Account:
        """
        Set the weekly interest rate of an account

        Args:
            account_id: Account ID
            rate: Fraction per period (0.05 for 5%); int, float, Decimal or str

        Raises:
            InvalidRate: If the rate is negative, above MAX_RATE (100%) or not
                a finite number
            AccountNotFound: If the account does not exist
        """
        new_rate = self._parse_rate(rate)

        with self.locks.hold(account_id):
            with self.store.atomic():
                account = self.require_account(account_id)
                old_rate = account.interest_rate
                account.interest_rate = new_rate
                account.updated_at = self.clock.now()
                self.store.put_account(account)

                if self.audit_trail:
                    self.audit_trail.log_event(
                        event_type=AuditEventType.INTEREST_RATE_CHANGED,
                        entity_type="account",
                        entity_id=account.id,
                        metadata={"old_rate": old_rate, "new_rate": new_rate},
                        timestamp=account.updated_at
                    )

        log_action(
            self.logger, "info", f"Interest rate for {account.name} set to {new_rate}",
            action="update_interest_rate", resource=f"account:{account.id}",
            extra={"old_rate": str(old_rate), "new_rate": str(new_rate)}
        )
        return account

    @staticmethod
    def _parse_rate(rate) -> Decimal:
        if isinstance(rate, bool):
            raise InvalidRate("Interest rate must be a number")
        try:
            value = rate if isinstance(rate, Decimal) else Decimal(str(rate).strip())
        except InvalidOperation:
            raise InvalidRate(f"Interest rate must be a number, got {rate!r}")
        if not value.is_finite():
            raise InvalidRate("Interest rate must be a finite number")
        if value < Decimal('0'):
            raise InvalidRate("Interest rate must be a non-negative number")
        if value > MAX_RATE:
            raise InvalidRate(f"Interest rate must not exceed {MAX_RATE} per period")
        return value
