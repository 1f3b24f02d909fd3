"""
Test suite for CSV import

Tests parsing of bank-export files, date ordered posting, per-row failure
reporting and directory imports.
"""

import pytest
import tempfile
from decimal import Decimal
from datetime import datetime, timezone
from pathlib import Path

from piggybank.accounts import AccountManager
from piggybank.audit import AuditTrail, AuditEventType
from piggybank.clock import FixedClock
from piggybank.exceptions import ImportFormatError
from piggybank.importer import CSVImporter
from piggybank.ledger import AccountLedger
from piggybank.models import TransactionKind
from piggybank.money import Money
from piggybank.storage import InMemoryStorage
from piggybank.store import LedgerStore


ALICE_EXPORT = '''Account,Alice
Balance,"$12,50"

Date,Description,Deposits,Withdrawal
2024-01-13,Candy,,"$3,50"
2024-01-06,Birthday money,"$20,00",
2024-01-20,Weekly interest,"$0,83",
2024-01-21,Bad row,abc,
2024-02-30,Bad date,"$1,00",
2024-01-27,Too much,,"$100,00"
,Blank date,"$5,00",
2024-01-28,No amount,,
'''


class TestCSVImporter:
    """Test CSVImporter functionality"""

    def setup_method(self):
        """Set up test environment"""
        self.temp_dir = tempfile.TemporaryDirectory()
        self.directory = Path(self.temp_dir.name)

        self.storage = InMemoryStorage()
        self.store = LedgerStore(self.storage)
        self.audit_trail = AuditTrail(self.storage)
        self.clock = FixedClock(datetime(2024, 3, 1, 12, tzinfo=timezone.utc))
        self.manager = AccountManager(self.store, self.audit_trail, self.clock)
        self.ledger = AccountLedger(self.store, self.manager, self.audit_trail, self.clock)
        self.importer = CSVImporter(self.ledger, self.manager, self.audit_trail)

    def teardown_method(self):
        self.temp_dir.cleanup()

    def write(self, name: str, content: str) -> Path:
        path = self.directory / name
        path.write_text(content, encoding="utf-8")
        return path

    def test_parse_file(self):
        path = self.write("alice.csv", ALICE_EXPORT)
        rows, failures = self.importer.parse_file(path)

        assert [r.description for r in rows] == ["Candy", "Birthday money", "Weekly interest", "Too much"]
        assert rows[0].row_number == 5
        assert rows[0].withdrawal == Decimal('3.50')
        assert rows[0].deposit is None
        assert rows[1].deposit == Decimal('20.00')
        assert rows[1].date == datetime(2024, 1, 6, tzinfo=timezone.utc)
        assert [f.row_number for f in failures] == [8, 9]

    def test_parse_file_without_header(self):
        path = self.write("broken.csv", "Something,Else\n1,2\n")
        with pytest.raises(ImportFormatError):
            self.importer.parse_file(path)

    def test_parse_alternative_date_formats(self):
        path = self.write("dates.csv", 'Date,Description,Deposits,Withdrawal\n01/06/2024,US,"$1,00",\n13.01.2024,EU,"$2,00",\n')
        rows, failures = self.importer.parse_file(path)
        assert failures == []
        assert [r.date.date().isoformat() for r in rows] == ["2024-01-06", "2024-01-13"]

    def test_import_file(self):
        account = self.manager.create_account("Alice")
        path = self.write("alice.csv", ALICE_EXPORT)

        report = self.importer.import_file(account.id, path)

        assert report.imported_count == 3
        assert [f.row_number for f in report.failures] == [8, 9, 10]
        assert "Insufficient funds" in report.failures[2].reason
        assert report.final_balance == Money(Decimal('17.33'))

        history = list(reversed(self.ledger.get_transaction_history(account.id)))
        assert [t.note for t in history] == ["Birthday money", "Candy", "Weekly interest"]
        assert [t.kind for t in history] == [
            TransactionKind.DEPOSIT, TransactionKind.WITHDRAWAL, TransactionKind.DEPOSIT
        ]
        assert history[0].timestamp == datetime(2024, 1, 6, tzinfo=timezone.utc)
        assert self.ledger.reconcile(account.id).is_consistent

    def test_import_is_audited(self):
        account = self.manager.create_account("Alice")
        self.importer.import_file(account.id, self.write("alice.csv", ALICE_EXPORT))

        events = self.audit_trail.get_events_by_type(AuditEventType.IMPORT_COMPLETED)
        assert len(events) == 1
        assert events[0].metadata["imported"] == 3
        assert events[0].metadata["failed"] == 3
        assert self.audit_trail.verify_integrity()['valid']

    def test_rows_older_than_history_are_reported(self):
        account = self.manager.create_account("Alice")
        self.ledger.deposit(account.id, 5)

        report = self.importer.import_file(account.id, self.write("alice.csv", ALICE_EXPORT))

        assert report.imported_count == 0
        assert report.final_balance == Money(Decimal('5'))
        assert all(f.reason for f in report.failures)

    def test_import_directory(self):
        alice = self.manager.create_account("Alice")
        self.write("alice.csv", ALICE_EXPORT)
        self.write("bob.csv", 'Date,Description,Deposits,Withdrawal\n2024-01-06,Gift,"$10,00",\n')
        self.write("notes.txt", "ignored")

        reports = self.importer.import_directory(self.directory)

        assert set(reports) == {"alice", "bob"}
        assert reports["alice"].account_id == alice.id
        assert reports["bob"] is None
        assert self.manager.find_account_by_name("bob") is None

    def test_import_directory_create_missing(self):
        self.write("bob.csv", 'Date,Description,Deposits,Withdrawal\n2024-01-06,Gift,"$10,00",\n')

        reports = self.importer.import_directory(self.directory, create_missing=True)

        bob = self.manager.find_account_by_name("Bob")
        assert bob is not None
        assert reports["bob"].account_id == bob.id
        assert bob.balance == Money(Decimal('10'))

    def test_import_directory_missing(self):
        with pytest.raises(FileNotFoundError):
            self.importer.import_directory(self.directory / "nope")
