"""
Open the leave ledger for a new year.

Run once at the start of the year (not scheduled by the application):

    python -m scripts.rollover_leave_year 2031 --admin-id 1

Unused paid leave carries over up to the configured cap; employees who
already have a ledger for the target year are skipped.
"""
import argparse
import logging

from app.core.config import settings
from app.core.logging import setup_logging
from app.database import Database
from app.models.user import User
from app.schemas.auth import Principal
from app.services.audit import AuditService
from app.services.leave_balance_service import LeaveBalanceService

logger = logging.getLogger("scripts.rollover_leave_year")


def main():
    parser = argparse.ArgumentParser(description="Roll leave balances into a new year")
    parser.add_argument("year", type=int, help="Target year")
    parser.add_argument("--admin-id", type=int, required=True, help="Employee id of the HR/Admin running the rollover")
    parser.add_argument("--purge-audit-days", type=int, default=None,
                        help="Also soft-delete activity log entries older than this many days")
    args = parser.parse_args()

    setup_logging()
    database = Database(settings.database_url).open()
    try:
        with database.session() as db:
            admin = db.get(User, args.admin_id)
            if admin is None:
                parser.error(f"Employee {args.admin_id} does not exist")
            actor = Principal(employee_id=admin.id, role=admin.role)

            created = LeaveBalanceService(db).rollover_year(actor, args.year)
            logger.info(f"Opened {len(created)} leave balances for {args.year}")

            if args.purge_audit_days:
                AuditService(db).purge_old_logs(args.purge_audit_days)
    finally:
        database.close()


if __name__ == "__main__":
    main()
