"""
System wiring

Builds every ledger component on one storage backend, one clock and one lock
registry, so the CLI, the scheduler and tests share the same invariants.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .accounts import AccountLocks, AccountManager
from .audit import AuditTrail, AuditEventType
from .clock import Clock, SystemClock
from .config import PiggybankConfig, get_config
from .importer import CSVImporter
from .interest import AccrualSchedule, InterestAccrualEngine
from .ledger import AccountLedger, ReconciliationResult
from .logging_config import get_logger, log_action
from .scheduler import InterestScheduler
from .storage import InMemoryStorage, SQLiteStorage, StorageInterface
from .store import LedgerStore


@dataclass
class VerificationReport:
    """Ledger reconciliation plus audit chain check"""
    reconciliations: List[ReconciliationResult] = field(default_factory=list)
    audit: Optional[Dict[str, Any]] = None

    @property
    def inconsistent_accounts(self) -> List[str]:
        return [r.account_id for r in self.reconciliations if not r.is_consistent]

    @property
    def is_valid(self) -> bool:
        if self.inconsistent_accounts:
            return False
        return self.audit is None or self.audit['valid']


class PiggyBank:
    """Savings ledger with all components initialized"""

    def __init__(
        self,
        storage: Optional[StorageInterface] = None,
        config: Optional[PiggybankConfig] = None,
        clock: Optional[Clock] = None
    ):
        self.config = config or get_config()
        self.storage = storage if storage is not None else InMemoryStorage()
        self.clock = clock or SystemClock()
        self.logger = get_logger("piggybank.bank")

        self.store = LedgerStore(self.storage)
        self.audit_trail = AuditTrail(self.storage) if self.config.enable_audit_logging else None
        self.locks = AccountLocks()

        self.account_manager = AccountManager(self.store, self.audit_trail, self.clock, self.locks)
        self.ledger = AccountLedger(self.store, self.account_manager, self.audit_trail, self.clock)
        self.schedule = AccrualSchedule(
            weekday=self.config.interest_anchor_weekday,
            hour=self.config.interest_anchor_hour,
            tz=self.config.interest_timezone
        )
        self.interest_engine = InterestAccrualEngine(
            self.ledger, self.account_manager, self.schedule, self.audit_trail, self.clock
        )
        self.importer = CSVImporter(
            self.ledger, self.account_manager, self.audit_trail,
            date_formats=self.config.import_date_formats,
            tz=self.config.interest_timezone
        )

    @classmethod
    def from_config(
        cls,
        config: Optional[PiggybankConfig] = None,
        storage: Optional[StorageInterface] = None,
        clock: Optional[Clock] = None
    ) -> 'PiggyBank':
        """Open the SQLite database named in the configuration"""
        config = config or get_config()
        if storage is None:
            storage = SQLiteStorage(config.database_path)
        return cls(storage=storage, config=config, clock=clock)

    def create_scheduler(self, interval_seconds: Optional[float] = None) -> InterestScheduler:
        return InterestScheduler(
            self.interest_engine,
            interval_seconds or self.config.scheduler_interval_seconds
        )

    def verify(self) -> VerificationReport:
        """Reconcile every account and check the audit chain"""
        report = VerificationReport()
        for account in self.account_manager.list_accounts():
            report.reconciliations.append(self.ledger.reconcile(account.id))

        if self.audit_trail:
            report.audit = self.audit_trail.verify_integrity()
            self.audit_trail.log_event(
                event_type=AuditEventType.AUDIT_INTEGRITY_CHECK,
                entity_type="system",
                entity_id="audit_trail",
                metadata={
                    "valid": report.audit['valid'],
                    "total_events": report.audit['total_events'],
                    "inconsistent_accounts": report.inconsistent_accounts,
                },
                timestamp=self.clock.now()
            )

        log_action(
            self.logger, "info" if report.is_valid else "error", "Ledger verification complete",
            action="verify",
            extra={
                "accounts": len(report.reconciliations),
                "inconsistent_accounts": report.inconsistent_accounts,
                "audit_valid": report.audit['valid'] if report.audit else None,
            }
        )
        return report

    def close(self) -> None:
        self.storage.close()
