"""
Ledger Models

Account snapshot and immutable transaction records plus their storage
(de)serialization.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass
from typing import Any, Dict, Optional
from enum import Enum

from .money import Money
from .storage import StorageRecord


class TransactionKind(Enum):
    """Kinds of ledger entries"""
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    INTEREST = "interest"

    @property
    def sign(self) -> int:
        """+1 for money in, -1 for money out"""
        return -1 if self is TransactionKind.WITHDRAWAL else 1


@dataclass
class Account(StorageRecord):
    """
    Child savings account

    ``balance`` and ``last_interest_applied_at`` change only through the
    ledger; ``interest_rate`` only through an explicit rate update.
    """
    name: str
    balance: Money
    interest_rate: Decimal = Decimal('0')  # Fraction per weekly period, 0.05 = 5%
    last_interest_applied_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert Account to dictionary for storage"""
        return {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'name': self.name,
            'balance': str(self.balance.amount),
            'interest_rate': str(self.interest_rate),
            'last_interest_applied_at': (
                self.last_interest_applied_at.isoformat()
                if self.last_interest_applied_at else None
            ),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Account':
        """Convert dictionary to Account"""
        last_applied = None
        if data.get('last_interest_applied_at'):
            last_applied = datetime.fromisoformat(data['last_interest_applied_at'])

        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            name=data['name'],
            balance=Money(Decimal(data['balance'])),
            interest_rate=Decimal(data['interest_rate']),
            last_interest_applied_at=last_applied,
        )


@dataclass(frozen=True)
class Transaction:
    """
    Immutable ledger entry

    ``amount`` is the magnitude moved; ``balance_after`` is the account
    balance right after this entry. ``sequence`` is the per-account append
    index and breaks timestamp ties.
    """
    id: str
    account_id: str
    kind: TransactionKind
    amount: Money
    balance_after: Money
    timestamp: datetime
    sequence: int
    note: Optional[str] = None

    def __post_init__(self):
        if not self.amount.is_positive():
            raise ValueError("Transaction amount must be positive")
        if self.balance_after.is_negative():
            raise ValueError("Transaction balance_after cannot be negative")

    @property
    def signed_amount(self) -> Money:
        """Amount with the direction applied"""
        return self.amount if self.kind.sign > 0 else -self.amount

    def to_dict(self) -> Dict[str, Any]:
        """Convert Transaction to dictionary for storage"""
        return {
            'id': self.id,
            'account_id': self.account_id,
            'kind': self.kind.value,
            'amount': str(self.amount.amount),
            'balance_after': str(self.balance_after.amount),
            'timestamp': self.timestamp.isoformat(),
            'sequence': self.sequence,
            'note': self.note,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transaction':
        """Convert dictionary to Transaction"""
        return cls(
            id=data['id'],
            account_id=data['account_id'],
            kind=TransactionKind(data['kind']),
            amount=Money(Decimal(data['amount'])),
            balance_after=Money(Decimal(data['balance_after'])),
            timestamp=datetime.fromisoformat(data['timestamp']),
            sequence=data['sequence'],
            note=data.get('note'),
        )
