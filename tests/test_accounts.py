"""
Test suite for accounts module

Tests account creation, lookup and interest rate updates.
"""

import pytest
from decimal import Decimal
from datetime import datetime, timezone

from piggybank.accounts import AccountManager, AccountLocks
from piggybank.audit import AuditTrail, AuditEventType
from piggybank.clock import FixedClock
from piggybank.exceptions import AccountNotFound, InvalidAccountName, InvalidRate
from piggybank.models import Account
from piggybank.money import Money
from piggybank.storage import InMemoryStorage
from piggybank.store import LedgerStore


class TestAccountModel:
    """Test Account serialization"""

    def test_account_round_trip(self):
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        account = Account(
            id="ACC001",
            created_at=now,
            updated_at=now,
            name="Alice",
            balance=Money(Decimal('12.50')),
            interest_rate=Decimal('0.05'),
            last_interest_applied_at=datetime(2024, 1, 1, 10, tzinfo=timezone.utc)
        )

        data = account.to_dict()
        assert data['balance'] == "12.50"
        assert data['interest_rate'] == "0.05"

        restored = Account.from_dict(data)
        assert restored == account


class TestAccountManager:
    """Test AccountManager functionality"""

    def setup_method(self):
        """Set up test environment"""
        self.storage = InMemoryStorage()
        self.store = LedgerStore(self.storage)
        self.audit_trail = AuditTrail(self.storage)
        self.clock = FixedClock(datetime(2024, 1, 3, 12, tzinfo=timezone.utc))
        self.manager = AccountManager(self.store, self.audit_trail, self.clock)

    def test_create_account(self):
        """Test new account starts empty with zero rate"""
        account = self.manager.create_account("  Alice ")

        assert account.name == "Alice"
        assert account.balance == Money.zero()
        assert account.interest_rate == Decimal('0')
        assert account.last_interest_applied_at is None
        assert account.created_at == self.clock.now()

        stored = self.manager.get_account(account.id)
        assert stored == account

    def test_create_account_ids_are_unique(self):
        first = self.manager.create_account("Alice")
        second = self.manager.create_account("Alice")
        assert first.id != second.id
        assert len(self.manager.list_accounts()) == 2

    def test_create_account_invalid_name(self):
        for name in ["", "   ", None, 42]:
            with pytest.raises(InvalidAccountName):
                self.manager.create_account(name)
        assert self.manager.list_accounts() == []

    def test_create_account_is_audited(self):
        account = self.manager.create_account("Bob")
        events = self.audit_trail.get_events_for_entity("account", account.id)
        assert len(events) == 1
        assert events[0].event_type == AuditEventType.ACCOUNT_CREATED
        assert events[0].metadata["name"] == "Bob"

    def test_get_missing_account(self):
        assert self.manager.get_account("nope") is None
        assert self.manager.get_account("") is None
        with pytest.raises(AccountNotFound) as exc_info:
            self.manager.require_account("nope")
        assert exc_info.value.account_id == "nope"

    def test_list_accounts_in_creation_order(self):
        names = ["Alice", "Bob", "Carol"]
        for name in names:
            self.manager.create_account(name)
        assert [a.name for a in self.manager.list_accounts()] == names

    def test_find_account_by_name(self):
        account = self.manager.create_account("Alice")
        assert self.manager.find_account_by_name("alice").id == account.id
        assert self.manager.find_account_by_name(" ALICE ").id == account.id
        assert self.manager.find_account_by_name("bob") is None

    def test_update_interest_rate(self):
        account = self.manager.create_account("Alice")

        updated = self.manager.update_interest_rate(account.id, "0.05")
        assert updated.interest_rate == Decimal('0.05')
        assert self.manager.get_account(account.id).interest_rate == Decimal('0.05')

        # Floats go through their decimal text
        updated = self.manager.update_interest_rate(account.id, 0.1)
        assert updated.interest_rate == Decimal('0.1')

        # Balance untouched
        assert updated.balance == Money.zero()

    def test_update_interest_rate_zero_allowed(self):
        account = self.manager.create_account("Alice")
        assert self.manager.update_interest_rate(account.id, 0).interest_rate == Decimal('0')

    def test_update_interest_rate_maximum(self):
        account = self.manager.create_account("Alice")
        assert self.manager.update_interest_rate(account.id, "1").interest_rate == Decimal('1')
        for rate in ["1.01", "1e30", 10 ** 40]:
            with pytest.raises(InvalidRate):
                self.manager.update_interest_rate(account.id, rate)
        assert self.manager.get_account(account.id).interest_rate == Decimal('1')

    def test_update_interest_rate_invalid(self):
        account = self.manager.create_account("Alice")
        for rate in [-0.01, "abc", float('nan'), float('inf'), True, None]:
            with pytest.raises(InvalidRate):
                self.manager.update_interest_rate(account.id, rate)
        assert self.manager.get_account(account.id).interest_rate == Decimal('0')

    def test_update_interest_rate_missing_account(self):
        with pytest.raises(AccountNotFound):
            self.manager.update_interest_rate("nope", "0.05")

    def test_update_interest_rate_is_audited(self):
        account = self.manager.create_account("Alice")
        self.manager.update_interest_rate(account.id, "0.05")

        events = self.audit_trail.get_events_by_type(AuditEventType.INTEREST_RATE_CHANGED)
        assert len(events) == 1
        assert events[0].metadata == {"old_rate": "0", "new_rate": "0.05"}

    def test_works_without_audit_trail(self):
        manager = AccountManager(self.store, clock=self.clock)
        account = manager.create_account("Alice")
        manager.update_interest_rate(account.id, "0.02")
        assert self.audit_trail.count_events() == 0


class TestAccountLocks:
    """Test per-account lock registry"""

    def test_same_account_shares_lock(self):
        locks = AccountLocks()
        assert locks._lock_for("a") is locks._lock_for("a")
        assert locks._lock_for("a") is not locks._lock_for("b")

    def test_hold_releases(self):
        locks = AccountLocks()
        with locks.hold("a"):
            assert locks._lock_for("a").locked()
        assert not locks._lock_for("a").locked()
