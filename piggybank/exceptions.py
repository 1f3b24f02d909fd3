"""
Ledger Exceptions

Caller errors subclass ValueError so existing ``except ValueError`` handlers
keep working; StorageFailure wraps anything raised by a storage backend.
"""


class PiggybankError(Exception):
    """Base class for all ledger errors"""


class InvalidAmount(PiggybankError, ValueError):
    """Amount is non-positive, non-finite or not a number"""


class InvalidRate(PiggybankError, ValueError):
    """Interest rate is negative or not a finite number"""


class InvalidAccountName(PiggybankError, ValueError):
    """Account name is missing or blank"""


class InvalidTimestamp(PiggybankError, ValueError):
    """Transaction timestamp would precede existing history"""


class AccountNotFound(PiggybankError, LookupError):
    """No account with the given id"""

    def __init__(self, account_id: str):
        super().__init__(f"Account {account_id} not found")
        self.account_id = account_id


class InsufficientFunds(PiggybankError, ValueError):
    """Withdrawal exceeds the current balance"""

    def __init__(self, account_id: str, balance, requested):
        super().__init__(
            f"Insufficient funds: available {balance}, requested {requested}"
        )
        self.account_id = account_id
        self.balance = balance
        self.requested = requested


class StorageFailure(PiggybankError):
    """Underlying persistence error; the backend error is chained as __cause__"""


class ImportFormatError(PiggybankError, ValueError):
    """Import file is not a recognised bank export"""
