"""Piggybank CLI: command-line interface for the savings ledger.

Commands:
  piggybank create NAME                Open an account for a child
  piggybank deposit ID AMOUNT          Deposit money
  piggybank withdraw ID AMOUNT         Withdraw money
  piggybank set-rate ID RATE           Set the weekly interest rate (0.05 = 5%)
  piggybank list                       Show all accounts
  piggybank history ID                 Show transactions, newest first
  piggybank accrue                     Apply any interest owed right now
  piggybank run                        Run the interest scheduler until interrupted
  piggybank import [DIR]               Import <child>.csv exports
  piggybank verify                     Reconcile balances and check the audit chain
"""

import argparse
import sys
from typing import List, Optional

from piggybank import __version__
from piggybank.bank import PiggyBank
from piggybank.config import get_config
from piggybank.exceptions import PiggybankError, StorageFailure
from piggybank.logging_config import setup_logging


def _account_line(account) -> str:
    rate = f"{account.interest_rate * 100:.2f}%"
    last = account.last_interest_applied_at.isoformat() if account.last_interest_applied_at else "never"
    return f"{account.id}  {account.name:<16} {account.balance.to_string():>12}  rate {rate}  last interest {last}"


def cmd_create(bank: PiggyBank, args: argparse.Namespace) -> int:
    account = bank.account_manager.create_account(args.name)
    print(f"Created account for {account.name}: {account.id}")
    return 0


def cmd_deposit(bank: PiggyBank, args: argparse.Namespace) -> int:
    transaction = bank.ledger.deposit(args.account_id, args.amount, note=args.note)
    print(f"Deposited {transaction.amount}; balance {transaction.balance_after}")
    return 0


def cmd_withdraw(bank: PiggyBank, args: argparse.Namespace) -> int:
    transaction = bank.ledger.withdraw(args.account_id, args.amount, note=args.note)
    print(f"Withdrew {transaction.amount}; balance {transaction.balance_after}")
    return 0


def cmd_set_rate(bank: PiggyBank, args: argparse.Namespace) -> int:
    account = bank.account_manager.update_interest_rate(args.account_id, args.rate)
    print(f"Interest rate for {account.name} set to {account.interest_rate * 100:.2f}% per week")
    return 0


def cmd_list(bank: PiggyBank, args: argparse.Namespace) -> int:
    accounts = bank.account_manager.list_accounts()
    if not accounts:
        print("No accounts")
    for account in accounts:
        print(_account_line(account))
    return 0


def cmd_history(bank: PiggyBank, args: argparse.Namespace) -> int:
    transactions = bank.ledger.get_transaction_history(args.account_id)
    if args.limit:
        transactions = transactions[:args.limit]
    for transaction in transactions:
        print(
            f"{transaction.timestamp.isoformat()}  {transaction.kind.value:<10} "
            f"{transaction.signed_amount.to_string():>12} {transaction.balance_after.to_string():>12}"
            f"  {transaction.note or ''}".rstrip()
        )
    return 0


def cmd_accrue(bank: PiggyBank, args: argparse.Namespace) -> int:
    batch = bank.interest_engine.run_batch()
    print(f"Processed {batch.accounts_processed} accounts, created {batch.transactions_created} interest transactions")
    for account_id in batch.failed_accounts:
        print(f"Interest failed for {account_id}", file=sys.stderr)
    return 1 if batch.failed_accounts else 0


def cmd_run(bank: PiggyBank, args: argparse.Namespace) -> int:
    scheduler = bank.create_scheduler(args.interval)
    print(f"Interest scheduler running every {scheduler.interval_seconds:g} seconds (Ctrl+C to stop)")
    try:
        scheduler.run_forever()
    except KeyboardInterrupt:
        scheduler.stop()
    return 0


def cmd_import(bank: PiggyBank, args: argparse.Namespace) -> int:
    directory = args.directory or bank.config.import_directory
    try:
        reports = bank.importer.import_directory(directory, create_missing=args.create_missing)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    status = 0
    for child_name, report in reports.items():
        if report is None:
            print(f"{child_name}: no matching account, skipped")
            status = 1
            continue
        print(f"{child_name}: imported {report.imported_count} transactions, final balance {report.final_balance}")
        for failure in report.failures:
            print(f"  row {failure.row_number}: {failure.reason}")
    return status


def cmd_verify(bank: PiggyBank, args: argparse.Namespace) -> int:
    report = bank.verify()
    for result in report.reconciliations:
        state = "ok" if result.is_consistent else "MISMATCH"
        print(
            f"{result.account_id}  stored {result.stored_balance}  computed {result.computed_balance}"
            f"  {result.transaction_count} transactions  {state}"
        )
    if report.audit is not None:
        state = "ok" if report.audit['valid'] else "BROKEN"
        print(f"Audit chain: {report.audit['total_events']} events  {state}")
    return 0 if report.is_valid else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="piggybank",
        description="Piggybank savings ledger with weekly interest",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--db", dest="database_path", help="SQLite database file (overrides PIGGYBANK_DATABASE_PATH)")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    p_create = subparsers.add_parser("create", help="Open an account")
    p_create.add_argument("name", help="Child name")
    p_create.set_defaults(func=cmd_create)

    p_deposit = subparsers.add_parser("deposit", help="Deposit money")
    p_deposit.add_argument("account_id")
    p_deposit.add_argument("amount")
    p_deposit.add_argument("--note")
    p_deposit.set_defaults(func=cmd_deposit)

    p_withdraw = subparsers.add_parser("withdraw", help="Withdraw money")
    p_withdraw.add_argument("account_id")
    p_withdraw.add_argument("amount")
    p_withdraw.add_argument("--note")
    p_withdraw.set_defaults(func=cmd_withdraw)

    p_rate = subparsers.add_parser("set-rate", help="Set weekly interest rate")
    p_rate.add_argument("account_id")
    p_rate.add_argument("rate", help="Fraction per week, e.g. 0.05")
    p_rate.set_defaults(func=cmd_set_rate)

    p_list = subparsers.add_parser("list", help="List accounts")
    p_list.set_defaults(func=cmd_list)

    p_history = subparsers.add_parser("history", help="Transaction history, newest first")
    p_history.add_argument("account_id")
    p_history.add_argument("--limit", type=int)
    p_history.set_defaults(func=cmd_history)

    p_accrue = subparsers.add_parser("accrue", help="Apply owed interest once")
    p_accrue.set_defaults(func=cmd_accrue)

    p_run = subparsers.add_parser("run", help="Run the interest scheduler")
    p_run.add_argument("--interval", type=float, help="Seconds between checks")
    p_run.set_defaults(func=cmd_run)

    p_import = subparsers.add_parser("import", help="Import <child>.csv exports")
    p_import.add_argument("directory", nargs="?", help="Directory of CSV files (default: PIGGYBANK_IMPORT_DIRECTORY)")
    p_import.add_argument("--create-missing", action="store_true", dest="create_missing",
                          help="Create accounts for files with no matching child")
    p_import.set_defaults(func=cmd_import)

    p_verify = subparsers.add_parser("verify", help="Reconcile balances and check the audit chain")
    p_verify.set_defaults(func=cmd_verify)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    config = get_config()
    if args.database_path:
        config = config.model_copy(update={"database_path": args.database_path})
    setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)

    bank = PiggyBank.from_config(config)
    try:
        return args.func(bank, args)
    except StorageFailure as e:
        print(f"Storage error: {e}", file=sys.stderr)
        return 2
    except PiggybankError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        bank.close()


if __name__ == "__main__":
    sys.exit(main())
