"""Payroll Command Line Interface.

Provides operational tools for:
- Schema creation
- Attendance locking and pre-checks
- Payroll generation and finalization
- Statutory reports
- Gratuity liability

Usage:
    statutory-payroll init-db
    statutory-payroll lock-attendance --tenant-id X --month 5 --year 2025
    statutory-payroll pre-checks --tenant-id X --month 5 --year 2025
    statutory-payroll generate --tenant-id X --month 5 --year 2025
    statutory-payroll finalize --tenant-id X --month 5 --year 2025 [--override-pre-check]
    statutory-payroll report pf --tenant-id X --month 5 --year 2025 [--csv]
    statutory-payroll gratuity --tenant-id X --as-of 2025-03-31
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import date
from typing import Any, Callable, Coroutine
from uuid import UUID

from statutory_payroll.calculators.gratuity import GratuityCalculator
from statutory_payroll.config import get_settings
from statutory_payroll.database import dispose_db, get_session, init_db
from statutory_payroll.errors import NotFoundError, PayrollError
from statutory_payroll.models import Base
from statutory_payroll.services.payroll_service import PayrollService
from statutory_payroll.services.report_service import ReportService

logger = logging.getLogger(__name__)


def parse_uuid(s: str) -> UUID:
    """Parse UUID string."""
    return UUID(s)


def parse_date(s: str) -> date:
    """Parse ISO date string."""
    return date.fromisoformat(s)


class PayrollCli:
    """Payroll Command Line Interface."""

    def __init__(self) -> None:
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="statutory-payroll",
            description="Statutory payroll operational tools",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        subparsers.add_parser("init-db", help="Create database tables")

        for name, help_text in (
            ("lock-attendance", "Lock attendance for a period"),
            ("pre-checks", "Run payroll pre-checks for a period"),
            ("generate", "Generate payslips for a period"),
            ("finalize", "Finalize a processed period"),
        ):
            sub = subparsers.add_parser(name, help=help_text)
            self._add_period_args(sub)
            if name == "finalize":
                sub.add_argument(
                    "--override-pre-check",
                    action="store_true",
                    help="Finalize even with missing payslips or open pre-checks",
                )

        report = subparsers.add_parser("report", help="Build a statutory report")
        report.add_argument("report_type", choices=ReportService.REPORT_TYPES)
        self._add_period_args(report)
        report.add_argument("--csv", action="store_true", help="Print rows as CSV")

        gratuity = subparsers.add_parser("gratuity", help="Gratuity liability for active employees")
        gratuity.add_argument("--tenant-id", type=parse_uuid, required=True, help="Tenant ID")
        gratuity.add_argument("--as-of", type=parse_date, default=date.today(), help="As-of date (ISO)")

        return parser

    @staticmethod
    def _add_period_args(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("--tenant-id", type=parse_uuid, required=True, help="Tenant ID")
        sub.add_argument("--month", type=int, required=True, choices=range(1, 13), help="Month (1-12)")
        sub.add_argument("--year", type=int, required=True, help="Year")
        sub.add_argument("--actor-id", type=parse_uuid, help="Acting user ID for the audit trail")

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        settings = get_settings()
        logging.basicConfig(
            level=settings.log_level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

        # Dispatch to command handler
        handlers: dict[str, Callable[[argparse.Namespace], Coroutine[Any, Any, int]]] = {
            "init-db": self._cmd_init_db,
            "lock-attendance": self._cmd_lock_attendance,
            "pre-checks": self._cmd_pre_checks,
            "generate": self._cmd_generate,
            "finalize": self._cmd_finalize,
            "report": self._cmd_report,
            "gratuity": self._cmd_gratuity,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        try:
            return asyncio.run(self._run_and_dispose(handler, parsed))
        except PayrollError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 2

    @staticmethod
    async def _run_and_dispose(
        handler: Callable[[argparse.Namespace], Coroutine[Any, Any, int]],
        args: argparse.Namespace,
    ) -> int:
        try:
            return await handler(args)
        finally:
            await dispose_db()

    async def _cmd_init_db(self, args: argparse.Namespace) -> int:
        """Create all tables."""
        engine, _ = init_db()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        print("Database schema created")
        return 0

    async def _cmd_lock_attendance(self, args: argparse.Namespace) -> int:
        async with get_session() as session:
            service = PayrollService(session)
            period = await service.initiate_payroll(args.tenant_id, args.month, args.year, args.actor_id)
            await service.lock_attendance(period.payroll_period_id, args.tenant_id, args.actor_id)
            print(f"Attendance locked for payroll {period.label}")
        return 0

    async def _cmd_pre_checks(self, args: argparse.Namespace) -> int:
        async with get_session() as session:
            service = PayrollService(session)
            period = await service.initiate_payroll(args.tenant_id, args.month, args.year, args.actor_id)
            checks = await service.run_pre_checks(period.payroll_period_id, args.tenant_id, args.actor_id)
            print(f"Pre-checks for payroll {period.label}: {len(checks)} open item(s)")
            for check in checks:
                print(f"  [{check.check_status}] {check.check_type}: {check.message}")
        return 0 if not checks else 1

    async def _cmd_generate(self, args: argparse.Namespace) -> int:
        async with get_session() as session:
            result = await PayrollService(session).generate_payroll(
                args.tenant_id, args.month, args.year, args.actor_id
            )
        print(json.dumps(result.to_dict(), indent=2))
        return 0 if not result.errors else 1

    async def _cmd_finalize(self, args: argparse.Namespace) -> int:
        async with get_session() as session:
            service = PayrollService(session)
            period = await service.get_period_for_month(args.tenant_id, args.month, args.year)
            if period is None:
                raise NotFoundError("PayrollPeriod", f"{args.month}/{args.year}")
            period = await service.finalize_payroll(
                period.payroll_period_id,
                args.tenant_id,
                args.actor_id,
                override_pre_check=args.override_pre_check,
            )
            print(
                f"Payroll {period.label} finalized: {period.employee_count} payslips, "
                f"gross {period.total_gross}, net {period.total_net}"
            )
        return 0

    async def _cmd_report(self, args: argparse.Namespace) -> int:
        async with get_session() as session:
            report = await ReportService(session).generate(
                args.report_type, args.tenant_id, args.month, args.year
            )
        if args.csv:
            sys.stdout.write(report.to_csv())
        else:
            print(json.dumps(report.to_dict(), indent=2))
        return 0

    async def _cmd_gratuity(self, args: argparse.Namespace) -> int:
        async with get_session() as session:
            results = await GratuityCalculator(session).calculate_bulk(args.tenant_id, args.as_of)
        print(json.dumps([r.to_dict() for r in results], indent=2))
        return 0


def main() -> int:
    """CLI entry point."""
    cli = PayrollCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
