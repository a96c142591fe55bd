#!/usr/bin/env python3
"""
Ledger maintenance commands.

Usage:
    ledger seed-chart
    ledger process-recurring [--as-of YYYY-MM-DD] [--dry-run]
    ledger trial-balance [--as-of YYYY-MM-DD]
    ledger close-year FY2025 [--dry-run]

Settings come from the YAML file named by LEDGER_CONFIG (or --config);
the packaged defaults apply otherwise.  Scheduled jobs run
process-recurring once a day.
"""

import argparse
import os
import sys
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from uuid import NAMESPACE_URL, UUID, uuid5

from ledger_config import load_settings
from ledger_kernel.exceptions import LedgerError
from ledger_services import LedgerAPI

CONFIG_ENV_VAR = "LEDGER_CONFIG"
CLI_ACTOR_ID = uuid5(NAMESPACE_URL, "ledger-cli")

W = 78


def _fmt(v: Decimal) -> str:
    return f"{v:,.2f}"


def _parse_date(value: str) -> date:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date (use YYYY-MM-DD): {value}")


def _seed_chart(api: LedgerAPI, args: argparse.Namespace) -> int:
    result = api.seed_default_chart(args.actor)
    print(f"Created {len(result.created)} account(s), {len(result.existing)} already present")
    for code in result.created:
        print(f"  + {code}")
    return 0


def _process_recurring(api: LedgerAPI, args: argparse.Namespace) -> int:
    report = api.process_recurring(args.actor, as_of=args.as_of, dry_run=args.dry_run)
    if report.dry_run:
        print(f"{len(report.due)} template(s) due on {report.as_of}:")
        for template in report.due:
            print(f"  {template.name:<40} next run {template.next_run_date}")
        return 0

    print(f"Posted {report.posted_count} entr(ies) as of {report.as_of}")
    for entry in report.posted:
        print(f"  {entry.entry_number}  {entry.entry_date}  {entry.description or ''}")
    for failure in report.failures:
        print(f"  FAILED {failure.template_name}: [{failure.error_code}] {failure.message}")
    return 1 if report.failures else 0


def _trial_balance(api: LedgerAPI, args: argparse.Namespace) -> int:
    tb = api.get_trial_balance(args.as_of)
    title = f"Trial balance as of {tb.as_of}" if tb.as_of else "Trial balance"
    print(title)
    print("=" * W)
    print(f"{'Code':<8}{'Account':<40}{'Debit':>15}{'Credit':>15}")
    print("-" * W)
    for row in tb.rows:
        print(
            f"{row.account_code:<8}{row.account_name[:39]:<40}"
            f"{_fmt(row.debit_balance):>15}{_fmt(row.credit_balance):>15}"
        )
    print("-" * W)
    print(f"{'Total':<48}{_fmt(tb.total_debit):>15}{_fmt(tb.total_credit):>15}")
    if not tb.is_balanced:
        print(f"OUT OF BALANCE by {_fmt(tb.difference)}")
        return 1
    return 0


def _print_close_preview(api: LedgerAPI, year_id: UUID) -> int:
    preview = api.preview_fiscal_year_close(year_id)
    codes = {a.account_id: a.account_code for a in preview.activities}
    codes[preview.retained_earnings_account_id] = preview.retained_earnings_code

    print(f"Closing entry for {preview.fiscal_year.name} (dry run, nothing posted)")
    print(f"{'Code':<8}{'Description':<40}{'Debit':>15}{'Credit':>15}")
    print("-" * W)
    for line in preview.lines:
        print(
            f"{codes[line.account_id]:<8}{(line.description or '')[:39]:<40}"
            f"{_fmt(line.debit):>15}{_fmt(line.credit):>15}"
        )
    if not preview.needs_entry:
        print("  No income or expense activity; the year would close without an entry")
    print(f"  Net income  {_fmt(preview.net_income):>15}")
    return 0


def _close_year(api: LedgerAPI, args: argparse.Namespace) -> int:
    years = api.list_fiscal_years()
    match = [y for y in years if y.name == args.year or str(y.id) == args.year]
    if not match:
        print(f"ERROR: no fiscal year named {args.year!r}", file=sys.stderr)
        return 1

    if args.dry_run:
        return _print_close_preview(api, match[0].id)

    result = api.close_fiscal_year(match[0].id, args.actor)
    print(f"Closed {result.fiscal_year.name}")
    print(f"  Revenue     {_fmt(result.total_revenue):>15}")
    print(f"  Expenses    {_fmt(result.total_expense):>15}")
    print(f"  Net income  {_fmt(result.net_income):>15}")
    if result.closing_entry_id is None:
        print("  No income or expense activity; no closing entry posted")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ledger",
        description="POS ledger maintenance commands.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=os.environ.get(CONFIG_ENV_VAR),
        help=f"Settings YAML (default: ${CONFIG_ENV_VAR}, then packaged defaults)",
    )
    parser.add_argument(
        "--actor",
        type=UUID,
        default=CLI_ACTOR_ID,
        help="Actor id recorded on created rows",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("seed-chart", help="Create the configured chart of accounts")
    p.set_defaults(handler=_seed_chart)

    p = sub.add_parser("process-recurring", help="Post due recurring entries")
    p.add_argument("--as-of", type=_parse_date, default=None)
    p.add_argument("--dry-run", action="store_true", help="List due templates only")
    p.set_defaults(handler=_process_recurring)

    p = sub.add_parser("trial-balance", help="Print the trial balance")
    p.add_argument("--as-of", type=_parse_date, default=None)
    p.set_defaults(handler=_trial_balance)

    p = sub.add_parser("close-year", help="Close a fiscal year into retained earnings")
    p.add_argument("year", help="Fiscal year name or id")
    p.add_argument("--dry-run", action="store_true", help="Show the closing entry only")
    p.set_defaults(handler=_close_year)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings(args.config)
    api = LedgerAPI.connect(settings)
    try:
        return args.handler(api, args)
    except LedgerError as exc:
        print(f"ERROR: [{exc.code}] {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
