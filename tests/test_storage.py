"""
Tests for storage backends and transaction support
"""

import pytest
import tempfile
import threading
from decimal import Decimal
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import patch

from piggybank.exceptions import StorageFailure
from piggybank.models import Transaction, TransactionKind
from piggybank.money import Money
from piggybank.storage import InMemoryStorage, SQLiteStorage, DuplicateRecordError
from piggybank.store import LedgerStore


# Test data
test_data = {
    "id": "test_001",
    "name": "Test Record",
    "amount": "100.50",
    "created_at": datetime.now(timezone.utc).isoformat(),
    "updated_at": datetime.now(timezone.utc).isoformat()
}


def _exercise_basic_operations(storage):
    # Test save and load
    storage.save("test_table", "record_1", test_data)
    assert storage.load("test_table", "record_1") == test_data
    assert storage.load("test_table", "missing") is None

    # Test exists
    assert storage.exists("test_table", "record_1")
    assert not storage.exists("test_table", "non_existent")

    # Test load_all keeps insertion order across updates
    storage.save("test_table", "record_2", {"id": "record_2", "data": "test"})
    storage.save("test_table", "record_1", dict(test_data, name="Updated"))
    all_records = storage.load_all("test_table")
    assert [r["id"] for r in all_records] == ["test_001", "record_2"]
    assert all_records[0]["name"] == "Updated"

    # Test find
    results = storage.find("test_table", {"id": "test_001"})
    assert len(results) == 1
    assert results[0]["id"] == "test_001"

    # Test count
    assert storage.count("test_table") == 2


class TestStorageInterface:
    """Test base storage interface functionality"""

    def test_in_memory_storage_basic_operations(self):
        """Test basic operations with InMemoryStorage"""
        storage = InMemoryStorage()
        _exercise_basic_operations(storage)
        storage.close()

    def test_sqlite_storage_basic_operations(self):
        """Test basic operations with SQLiteStorage"""
        with tempfile.TemporaryDirectory() as temp_dir:
            storage = SQLiteStorage(Path(temp_dir) / "test.db")
            _exercise_basic_operations(storage)
            storage.close()

    def test_in_memory_returns_copies(self):
        storage = InMemoryStorage()
        storage.save("t", "1", {"id": "1", "values": [1]})
        loaded = storage.load("t", "1")
        loaded["values"].append(2)
        assert storage.load("t", "1")["values"] == [1]

    @pytest.mark.parametrize("factory", [InMemoryStorage, SQLiteStorage])
    def test_insert_refuses_duplicates(self, factory):
        storage = factory()
        storage.insert("t", "1", {"id": "1"})
        with pytest.raises(DuplicateRecordError):
            storage.insert("t", "1", {"id": "1", "other": True})
        assert storage.load("t", "1") == {"id": "1"}
        storage.close()


class TestAtomic:
    """Test all-or-nothing units of work"""

    @pytest.mark.parametrize("factory", [InMemoryStorage, SQLiteStorage])
    def test_atomic_commits(self, factory):
        storage = factory()
        with storage.atomic():
            storage.save("t", "1", {"id": "1"})
            storage.insert("t", "2", {"id": "2"})
        assert storage.count("t") == 2
        storage.close()

    @pytest.mark.parametrize("factory", [InMemoryStorage, SQLiteStorage])
    def test_atomic_rolls_back_on_error(self, factory):
        storage = factory()
        storage.save("t", "1", {"id": "1", "value": 1})

        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("t", "1", {"id": "1", "value": 2})
                storage.insert("t", "2", {"id": "2"})
                raise RuntimeError("boom")

        assert storage.load("t", "1") == {"id": "1", "value": 1}
        assert not storage.exists("t", "2")
        storage.close()

    @pytest.mark.parametrize("factory", [InMemoryStorage, SQLiteStorage])
    def test_nested_atomic_joins_outer_block(self, factory):
        storage = factory()

        with pytest.raises(RuntimeError):
            with storage.atomic():
                with storage.atomic():
                    storage.save("t", "inner", {"id": "inner"})
                storage.save("t", "outer", {"id": "outer"})
                raise RuntimeError("boom")

        assert storage.count("t") == 0
        storage.close()

    def test_sqlite_rollback_of_new_table(self):
        """A table created inside a rolled back unit is recreated on next use"""
        storage = SQLiteStorage()
        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("fresh", "1", {"id": "1"})
                raise RuntimeError("boom")

        storage.save("fresh", "2", {"id": "2"})
        assert storage.count("fresh") == 1
        storage.close()

    def test_atomic_blocks_other_writers(self):
        """Writers on other threads wait for the open unit of work"""
        storage = InMemoryStorage()
        entered = threading.Event()
        release = threading.Event()
        order = []

        def holder():
            with storage.atomic():
                entered.set()
                release.wait(5)
                order.append("holder")

        def writer():
            entered.wait(5)
            storage.save("t", "w", {"id": "w"})
            order.append("writer")

        t1 = threading.Thread(target=holder)
        t2 = threading.Thread(target=writer)
        t1.start()
        t2.start()
        entered.wait(5)
        release.set()
        t1.join(5)
        t2.join(5)

        assert order == ["holder", "writer"]


class TestSQLitePersistence:
    """Test data survives reopening the database"""

    def test_reopen(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = Path(temp_dir) / "ledger.db"
            storage = SQLiteStorage(db_path)
            with storage.atomic():
                storage.save("accounts", "a", {"id": "a", "balance": "10.00"})
            storage.close()

            reopened = SQLiteStorage(db_path)
            assert reopened.load("accounts", "a") == {"id": "a", "balance": "10.00"}
            reopened.close()


class TestLedgerStore:
    """Test backend error translation"""

    def test_backend_errors_become_storage_failure(self):
        store = LedgerStore(InMemoryStorage())
        with patch.object(store.storage, "load_all", side_effect=OSError("disk gone")):
            with pytest.raises(StorageFailure) as exc_info:
                store.list_accounts()
        assert isinstance(exc_info.value.__cause__, OSError)

    def test_duplicate_append_is_storage_failure(self):
        store = LedgerStore(InMemoryStorage())
        transaction = Transaction(
            id="tx-1",
            account_id="acct",
            kind=TransactionKind.DEPOSIT,
            amount=Money(Decimal("5")),
            balance_after=Money(Decimal("5")),
            timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
            sequence=0
        )
        store.append_transaction(transaction)
        with pytest.raises(StorageFailure):
            store.append_transaction(transaction)
        assert len(store.list_transactions("acct")) == 1
