"""
Interest Engine Module

Weekly interest accrual with retroactive catch-up. For each account the engine
enumerates every anchor instant owed since the last applied period and credits
them oldest first, so a process that was offline for weeks pays every missed
week exactly once when it comes back.

Idempotence comes only from ``last_interest_applied_at`` on each account:
running the engine again before the next anchor changes nothing.
"""

from datetime import datetime, time, timedelta
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo

from .accounts import AccountManager
from .audit import AuditTrail, AuditEventType
from .clock import Clock, SystemClock
from .exceptions import PiggybankError
from .ledger import AccountLedger
from .logging_config import get_logger, log_action
from .models import Account, Transaction


class AccrualSchedule:
    """
    Weekly anchor instants (default Monday 10:00 UTC)

    Cycles are calendar weeks starting Monday 00:00 in the schedule timezone;
    each cycle has exactly one anchor.
    """

    def __init__(self, weekday: int = 0, hour: int = 10, tz: str = "UTC"):
        if not 0 <= weekday <= 6:
            raise ValueError("Anchor weekday must be between 0 (Monday) and 6 (Sunday)")
        if not 0 <= hour <= 23:
            raise ValueError("Anchor hour must be between 0 and 23")
        self.weekday = weekday
        self.hour = hour
        self.tz = ZoneInfo(tz)

    def _anchor_on(self, day) -> datetime:
        return datetime.combine(day, time(self.hour), tzinfo=self.tz)

    def cycle_anchor(self, now: datetime) -> datetime:
        """Anchor of the week containing ``now``; may still be in the future"""
        local = now.astimezone(self.tz)
        week_start = local.date() - timedelta(days=local.weekday())
        return self._anchor_on(week_start + timedelta(days=self.weekday))

    def next_anchor_after(self, instant: datetime) -> datetime:
        """First anchor strictly after ``instant``"""
        local = instant.astimezone(self.tz)
        days_ahead = (self.weekday - local.weekday()) % 7
        candidate = self._anchor_on(local.date() + timedelta(days=days_ahead))
        if candidate <= instant:
            candidate = self._anchor_on(candidate.date() + timedelta(weeks=1))
        return candidate

    def due_periods(self, last_applied: Optional[datetime], now: datetime) -> List[datetime]:
        """
        Anchors owed interest, oldest first

        Never accrued: only the current cycle's anchor, once it has passed.
        Accrued before: every anchor after ``last_applied`` up to ``now``.
        """
        if last_applied is None:
            anchor = self.cycle_anchor(now)
            return [anchor] if now >= anchor else []

        periods = []
        anchor = self.next_anchor_after(last_applied)
        while anchor <= now:
            periods.append(anchor)
            # Step on the local calendar so DST shifts keep the wall-clock hour
            anchor = self._anchor_on(anchor.date() + timedelta(weeks=1))
        return periods


@dataclass
class AccrualResult:
    """Outcome of one account's accrual run"""
    account_id: str
    due_periods: List[datetime] = field(default_factory=list)
    applied: List[Transaction] = field(default_factory=list)
    skipped: List[datetime] = field(default_factory=list)   # Zero interest or already applied
    failed_period: Optional[datetime] = None
    error: Optional[str] = None
    deferred: List[datetime] = field(default_factory=list)  # Left for the next run

    @property
    def succeeded(self) -> bool:
        return self.failed_period is None


@dataclass
class BatchResult:
    """Outcome of one scheduler tick across all accounts"""
    started_at: datetime
    results: Dict[str, AccrualResult] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def transactions_created(self) -> int:
        return sum(len(r.applied) for r in self.results.values())

    @property
    def accounts_processed(self) -> int:
        return len(self.results)

    @property
    def failed_accounts(self) -> List[str]:
        failed = [a for a, r in self.results.items() if not r.succeeded]
        return failed + [a for a in self.failures if a not in failed]


class InterestAccrualEngine:
    """
    Determines owed periods and applies each exactly once
    """

    def __init__(
        self,
        ledger: AccountLedger,
        account_manager: AccountManager,
        schedule: Optional[AccrualSchedule] = None,
        audit_trail: Optional[AuditTrail] = None,
        clock: Optional[Clock] = None
    ):
        self.ledger = ledger
        self.account_manager = account_manager
        self.schedule = schedule or AccrualSchedule()
        self.audit_trail = audit_trail
        self.clock = clock or SystemClock()
        self.logger = get_logger("piggybank.interest")

    def due_periods(self, account: Account, now: Optional[datetime] = None) -> List[datetime]:
        """Periods the account is owed as of ``now``"""
        return self.schedule.due_periods(account.last_interest_applied_at, now or self.clock.now())

    def accrue_account(self, account_id: str) -> AccrualResult:
        """
        Apply every owed period for one account, oldest first

        A ledger or storage failure stops this account at the failing period;
        it and the later periods are retried on the next run because the
        stored date has not moved past them.
        """
        account = self.account_manager.require_account(account_id)
        periods = self.due_periods(account)
        result = AccrualResult(account_id=account_id, due_periods=periods)

        if not periods:
            return result

        if account.interest_rate.is_zero() or account.balance.is_zero():
            result.skipped = list(periods)
            log_action(
                self.logger, "info",
                f"Skipping {len(periods)} interest period(s) for account: {account.name} (zero rate or balance)",
                action="skip_interest", resource=f"account:{account_id}",
                extra={"periods": [p.isoformat() for p in periods]}
            )
            return result

        log_action(
            self.logger, "info",
            f"Processing {len(periods)} interest period(s) for account: {account.name}",
            action="accrue_interest", resource=f"account:{account_id}"
        )

        for index, period in enumerate(periods):
            try:
                transaction = self.ledger.apply_interest(account_id, period)
            except PiggybankError as e:
                result.failed_period = period
                result.error = str(e)
                result.deferred = periods[index + 1:]
                self._report_failure(account, period, e)
                break

            if transaction is None:
                # Rounded to zero, or a concurrent run got there first
                result.skipped.append(period)
                log_action(
                    self.logger, "debug",
                    f"No interest posted for {period.date().isoformat()}",
                    action="skip_interest", resource=f"account:{account_id}",
                    extra={"period": period.isoformat()}
                )
                continue

            result.applied.append(transaction)
            log_action(
                self.logger, "info",
                f"Interest applied for {period.date().isoformat()}: {transaction.amount}",
                action="apply_interest", resource=f"account:{account_id}",
                extra={"period": period.isoformat(), "transaction_id": transaction.id}
            )

        return result

    def run_batch(self) -> BatchResult:
        """
        Accrue interest for every account

        Accounts are independent: a failure on one is logged and recorded and
        the loop moves on.
        """
        batch = BatchResult(started_at=self.clock.now())

        for account in self.account_manager.list_accounts():
            try:
                batch.results[account.id] = self.accrue_account(account.id)
            except Exception as e:
                batch.failures[account.id] = str(e)
                log_action(
                    self.logger, "error", f"Interest accrual failed for account: {account.name}",
                    action="accrue_interest", resource=f"account:{account.id}",
                    extra={"error": str(e)}, exc_info=True
                )

        log_action(
            self.logger, "info", "Interest batch complete",
            action="run_batch",
            extra={
                "accounts": batch.accounts_processed,
                "transactions": batch.transactions_created,
                "failed_accounts": batch.failed_accounts,
            }
        )
        return batch

    def _report_failure(self, account: Account, period: datetime, error: Exception) -> None:
        log_action(
            self.logger, "error",
            f"Failed to apply interest for {period.date().isoformat()} on account: {account.name}",
            action="apply_interest", resource=f"account:{account.id}",
            extra={"period": period.isoformat(), "error": str(error)}, exc_info=True
        )

        if not self.audit_trail:
            return
        try:
            self.audit_trail.log_event(
                event_type=AuditEventType.INTEREST_ACCRUAL_FAILED,
                entity_type="account",
                entity_id=account.id,
                metadata={"period": period, "error": str(error)}
            )
        except Exception:
            # Storage is usually the thing that failed; the log line above stands
            self.logger.warning(
                "Could not record accrual failure in audit trail for account %s",
                account.id, exc_info=True
            )
