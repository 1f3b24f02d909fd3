"""
CSV Import Module

Loads transaction history exported from a previous savings tracker. The export
starts with a few lines of account summary; the table itself begins at the
row whose first two columns are ``Date,Description``::

    Account,Alice
    Balance,"$253,89"

    Date,Description,Deposits,Withdrawal
    2024-01-06,Birthday money,"$20,00",
    2024-01-13,Candy,,"$3,50"

Amounts use either a comma (``"$7,00"``) or a dot (``"$1,234.50"``) as the
decimal separator. Rows are posted in date order through the ledger, so every
balance invariant and the audit trail apply exactly as for manual postings.
"""

import csv
import io
from datetime import datetime
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional, Union
from zoneinfo import ZoneInfo

from .accounts import AccountManager
from .audit import AuditTrail, AuditEventType
from .exceptions import ImportFormatError, PiggybankError
from .ledger import AccountLedger
from .logging_config import get_logger, log_action
from .models import Transaction
from .money import Money, decimal_from_string


HEADER_PREFIX = "Date,Description"

DEFAULT_DATE_FORMATS = ["%Y-%m-%d", "%m/%d/%Y", "%d.%m.%Y", "%b %d, %Y"]


@dataclass
class ImportRow:
    """One parsed table row"""
    row_number: int  # Line number in the source file
    date: datetime
    description: str
    deposit: Optional[Decimal] = None
    withdrawal: Optional[Decimal] = None


@dataclass
class ImportFailure:
    row_number: int
    reason: str


@dataclass
class ImportReport:
    """Result of importing one file into one account"""
    account_id: str
    source: str
    imported: List[Transaction] = field(default_factory=list)
    failures: List[ImportFailure] = field(default_factory=list)
    final_balance: Optional[Money] = None

    @property
    def imported_count(self) -> int:
        return len(self.imported)


class CSVImporter:
    """
    Imports bank-export CSV files into existing accounts
    """

    def __init__(
        self,
        ledger: AccountLedger,
        account_manager: AccountManager,
        audit_trail: Optional[AuditTrail] = None,
        date_formats: Optional[List[str]] = None,
        tz: str = "UTC"
    ):
        self.ledger = ledger
        self.account_manager = account_manager
        self.audit_trail = audit_trail
        self.date_formats = date_formats or list(DEFAULT_DATE_FORMATS)
        self.tz = ZoneInfo(tz)
        self.logger = get_logger("piggybank.importer")

    def parse_date(self, value: str) -> datetime:
        """Parse a row date as midnight in the importer timezone"""
        text = value.strip()
        for date_format in self.date_formats:
            try:
                parsed = datetime.strptime(text, date_format)
            except ValueError:
                continue
            return parsed.replace(tzinfo=self.tz)
        raise ValueError(f"Unrecognised date '{value}'")

    def parse_file(self, path: Union[str, Path]):
        """
        Parse an export file

        Returns:
            (rows, failures): parsed rows in file order, and rows that could
            not be parsed. Rows without a date or without any amount are
            ignored.

        Raises:
            ImportFormatError: If the file has no ``Date,Description`` header
        """
        with open(path, encoding="utf-8-sig", newline="") as f:
            lines = f.read().splitlines()

        header_index = None
        for index, line in enumerate(lines):
            if line.startswith(HEADER_PREFIX):
                header_index = index
                break

        if header_index is None:
            raise ImportFormatError(f"Could not find CSV header row in {path}")

        reader = csv.DictReader(io.StringIO("\n".join(lines[header_index:])), skipinitialspace=True)

        rows: List[ImportRow] = []
        failures: List[ImportFailure] = []
        for record in reader:
            # DictReader counts the header as line 1
            row_number = header_index + reader.line_num

            date_text = (record.get("Date") or "").strip()
            deposit_text = (record.get("Deposits") or "").strip()
            withdrawal_text = (record.get("Withdrawal") or "").strip()
            if not date_text or not (deposit_text or withdrawal_text):
                continue

            try:
                row = ImportRow(
                    row_number=row_number,
                    date=self.parse_date(date_text),
                    description=(record.get("Description") or "").strip(),
                    deposit=decimal_from_string(deposit_text) if deposit_text else None,
                    withdrawal=decimal_from_string(withdrawal_text) if withdrawal_text else None,
                )
            except ValueError as e:
                failures.append(ImportFailure(row_number, str(e)))
                continue

            rows.append(row)

        return rows, failures

    def import_file(self, account_id: str, path: Union[str, Path]) -> ImportReport:
        """
        Post every row of ``path`` to an account, oldest first

        Existing history is kept; rows dated before the account's latest
        transaction fail with InvalidTimestamp and are reported. A failing row
        never aborts the rest of the file.
        """
        account = self.account_manager.require_account(account_id)
        rows, failures = self.parse_file(path)
        report = ImportReport(account_id=account_id, source=str(path), failures=failures)

        # sort() is stable, so same-day rows keep their file order
        rows.sort(key=lambda r: r.date)

        for row in rows:
            note = row.description or None
            try:
                if row.deposit is not None:
                    transaction = self.ledger.deposit(account_id, row.deposit, note=note, timestamp=row.date)
                else:
                    transaction = self.ledger.withdraw(account_id, row.withdrawal, note=note, timestamp=row.date)
            except PiggybankError as e:
                report.failures.append(ImportFailure(row.row_number, str(e)))
                log_action(
                    self.logger, "warning", f"Skipped row {row.row_number} of {path}: {e}",
                    action="import_row", resource=f"account:{account_id}"
                )
                continue
            report.imported.append(transaction)

        report.failures.sort(key=lambda f: f.row_number)
        report.final_balance = self.account_manager.require_account(account_id).balance

        if self.audit_trail:
            self.audit_trail.log_event(
                event_type=AuditEventType.IMPORT_COMPLETED,
                entity_type="account",
                entity_id=account_id,
                metadata={
                    "source": report.source,
                    "imported": report.imported_count,
                    "failed": len(report.failures),
                    "final_balance": report.final_balance.to_string(),
                }
            )

        log_action(
            self.logger, "info",
            f"Import complete for {account.name}: {report.imported_count} transactions, "
            f"final balance {report.final_balance}",
            action="import_file", resource=f"account:{account_id}",
            extra={"source": report.source, "failed": len(report.failures)}
        )
        return report

    def import_directory(
        self,
        directory: Union[str, Path],
        create_missing: bool = False
    ) -> Dict[str, Optional[ImportReport]]:
        """
        Import every ``<child>.csv`` in a directory

        The file stem is matched case-insensitively against account names.
        Files with no matching account are skipped (mapped to None) unless
        ``create_missing`` is set.

        Returns:
            Map of file stem to its ImportReport
        """
        directory = Path(directory)
        if not directory.is_dir():
            raise FileNotFoundError(f"Import directory not found: {directory}")

        files = sorted(directory.glob("*.csv"))
        log_action(
            self.logger, "info", f"Found {len(files)} CSV files to import",
            action="import_directory", extra={"directory": str(directory)}
        )

        reports: Dict[str, Optional[ImportReport]] = {}
        for path in files:
            child_name = path.stem
            account = self.account_manager.find_account_by_name(child_name)
            if account is None:
                if not create_missing:
                    log_action(
                        self.logger, "warning", f"Account not found for {child_name}",
                        action="import_directory", extra={"file": str(path)}
                    )
                    reports[child_name] = None
                    continue
                account = self.account_manager.create_account(child_name)

            reports[child_name] = self.import_file(account.id, path)

        return reports
