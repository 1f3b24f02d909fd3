"""
Tests for system wiring and ledger verification
"""

import tempfile
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

from piggybank.bank import PiggyBank
from piggybank.clock import FixedClock
from piggybank.config import PiggybankConfig
from piggybank.money import Money
from piggybank.storage import InMemoryStorage, SQLiteStorage


class TestPiggyBank:
    """Test component wiring"""

    def setup_method(self):
        self.clock = FixedClock(datetime(2024, 1, 3, 12, tzinfo=timezone.utc))
        self.bank = PiggyBank(InMemoryStorage(), PiggybankConfig(), self.clock)

    def test_components_share_storage_and_locks(self):
        assert self.bank.store.storage is self.bank.storage
        assert self.bank.audit_trail.storage is self.bank.storage
        assert self.bank.ledger.locks is self.bank.account_manager.locks
        assert self.bank.interest_engine.clock is self.clock

    def test_schedule_from_config(self):
        config = PiggybankConfig(interest_anchor_weekday=4, interest_anchor_hour=17,
                                 interest_timezone="Europe/Berlin")
        bank = PiggyBank(InMemoryStorage(), config, self.clock)
        assert bank.schedule.weekday == 4
        assert bank.schedule.hour == 17
        assert str(bank.schedule.tz) == "Europe/Berlin"

    def test_audit_can_be_disabled(self):
        bank = PiggyBank(InMemoryStorage(), PiggybankConfig(enable_audit_logging=False), self.clock)
        account = bank.account_manager.create_account("Alice")
        bank.ledger.deposit(account.id, 5)

        assert bank.audit_trail is None
        assert bank.storage.count("audit_events") == 0
        assert bank.verify().is_valid

    def test_verify_consistent_ledger(self):
        account = self.bank.account_manager.create_account("Alice")
        self.bank.ledger.deposit(account.id, 20)
        self.bank.ledger.withdraw(account.id, "7.5")

        report = self.bank.verify()

        assert report.is_valid
        assert report.inconsistent_accounts == []
        assert report.audit['valid']
        assert report.reconciliations[0].stored_balance == Money(Decimal('12.50'))

    def test_verify_detects_balance_drift(self):
        account = self.bank.account_manager.create_account("Alice")
        self.bank.ledger.deposit(account.id, 20)

        stored = self.bank.account_manager.require_account(account.id)
        stored.balance = Money(Decimal('25'))
        self.bank.store.put_account(stored)

        report = self.bank.verify()
        assert not report.is_valid
        assert report.inconsistent_accounts == [account.id]

    def test_from_config_opens_sqlite(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            config = PiggybankConfig(database_path=str(Path(temp_dir) / "bank.db"))

            bank = PiggyBank.from_config(config, clock=self.clock)
            assert isinstance(bank.storage, SQLiteStorage)
            account = bank.account_manager.create_account("Alice")
            bank.ledger.deposit(account.id, "3.33")
            bank.close()

            reopened = PiggyBank.from_config(config, clock=self.clock)
            assert reopened.account_manager.require_account(account.id).balance == Money(Decimal('3.33'))
            assert reopened.verify().is_valid
            reopened.close()

    def test_create_scheduler_uses_config_interval(self):
        bank = PiggyBank(InMemoryStorage(), PiggybankConfig(scheduler_interval_seconds=60), self.clock)
        assert bank.create_scheduler().interval_seconds == 60
        assert bank.create_scheduler(5).interval_seconds == 5
