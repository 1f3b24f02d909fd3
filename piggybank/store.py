"""
Ledger Store Module

Typed access to accounts and the append-only transaction log on top of any
StorageInterface backend. Every backend error surfaces as StorageFailure.
"""

from contextlib import contextmanager
from typing import List, Optional

from .exceptions import PiggybankError, StorageFailure
from .models import Account, Transaction
from .storage import StorageInterface


class LedgerStore:
    """Account snapshots plus append-only transaction log"""

    accounts_table = "accounts"
    transactions_table = "transactions"

    def __init__(self, storage: StorageInterface):
        self.storage = storage

    @contextmanager
    def _storage_errors(self, operation: str):
        try:
            yield
        except PiggybankError:
            raise
        except Exception as e:
            raise StorageFailure(f"Storage {operation} failed: {e}") from e

    @contextmanager
    def atomic(self):
        """
        All-or-nothing unit for the account update and transaction append

        Ledger errors raised inside the block pass through unchanged after the
        rollback; anything else is reported as StorageFailure.
        """
        with self._storage_errors("transaction"):
            with self.storage.atomic():
                yield

    def get_account(self, account_id: str) -> Optional[Account]:
        with self._storage_errors("read"):
            data = self.storage.load(self.accounts_table, account_id)
            if data:
                return Account.from_dict(data)
            return None

    def list_accounts(self) -> List[Account]:
        with self._storage_errors("read"):
            return [Account.from_dict(data) for data in self.storage.load_all(self.accounts_table)]

    def create_account(self, account: Account) -> None:
        with self._storage_errors("write"):
            self.storage.insert(self.accounts_table, account.id, account.to_dict())

    def put_account(self, account: Account) -> None:
        """Overwrite the stored account snapshot"""
        with self._storage_errors("write"):
            self.storage.save(self.accounts_table, account.id, account.to_dict())

    def append_transaction(self, transaction: Transaction) -> None:
        """Create-only append; a duplicate id raises StorageFailure"""
        with self._storage_errors("write"):
            self.storage.insert(self.transactions_table, transaction.id, transaction.to_dict())

    def list_transactions(self, account_id: str) -> List[Transaction]:
        """Transactions of an account, newest first"""
        with self._storage_errors("read"):
            records = self.storage.find(self.transactions_table, {"account_id": account_id})
            transactions = [Transaction.from_dict(data) for data in records]
        transactions.sort(key=lambda t: (t.timestamp, t.sequence), reverse=True)
        return transactions

    def latest_transaction(self, account_id: str) -> Optional[Transaction]:
        transactions = self.list_transactions(account_id)
        return transactions[0] if transactions else None
