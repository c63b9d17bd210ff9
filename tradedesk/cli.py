"""CLI tool for operator tasks.

Usage:
    python -m tradedesk.cli create-admin
    python -m tradedesk.cli create-user
    python -m tradedesk.cli settle <trade_id>
    python -m tradedesk.cli stuck
"""

import asyncio
import getpass
import sys
from decimal import Decimal, InvalidOperation

from sqlmodel import Session, select

from tradedesk.config import settings
from tradedesk.database import engine, create_db_and_tables
from tradedesk.engine.scheduler import expected_end_time, find_stuck_trades
from tradedesk.errors import SettlementError
from tradedesk.models.user import User
from tradedesk.services.auth import hash_password
from tradedesk.utils.logging import setup_logging


def create_user(role: str = "user"):
    """Create a user (or admin) with a password and opening balance."""
    create_db_and_tables()

    username = input("Username: ").strip()
    if not username:
        print("Username cannot be empty.")
        sys.exit(1)

    with Session(engine) as session:
        existing = session.exec(select(User).where(User.username == username)).first()
        if existing:
            print(f"User '{username}' already exists.")
            sys.exit(1)

    password = getpass.getpass("Password: ")
    password_confirm = getpass.getpass("Confirm password: ")
    if password != password_confirm:
        print("Passwords do not match.")
        sys.exit(1)

    balance = Decimal("0")
    if role == "user":
        raw = input("Opening balance [0]: ").strip() or "0"
        try:
            balance = Decimal(raw)
        except InvalidOperation:
            print(f"Invalid balance: {raw}")
            sys.exit(1)

    user = User(
        username=username,
        hashed_password=hash_password(password),
        role=role,
        balance=balance,
    )

    with Session(engine) as session:
        session.add(user)
        session.commit()

    print(f"\n{role.capitalize()} '{username}' created successfully.")


def settle(trade_id: int):
    """Run settlement for one trade right now (manual recovery)."""
    from tradedesk.engine.runtime import build_runtime

    create_db_and_tables()
    runtime = build_runtime(engine, settings)
    try:
        outcome = asyncio.run(runtime.coordinator.settle(trade_id))
    except SettlementError as e:
        print(f"Trade {trade_id} not settled: {e}")
        sys.exit(1)

    if outcome is None:
        print(f"Trade {trade_id} is not active; nothing to do.")
    else:
        print(
            f"Trade {trade_id} settled: {outcome.result}, payout {outcome.payout}, "
            f"balance {outcome.balance}"
        )


def list_stuck():
    """Print active trades overdue past the grace period."""
    create_db_and_tables()
    stuck = find_stuck_trades(engine, settings.stuck_trade_grace_seconds)
    if not stuck:
        print("No stuck trades.")
        return
    for trade in stuck:
        print(
            f"#{trade.id} user={trade.user_id} {trade.asset_id} {trade.direction} "
            f"amount={trade.amount} ended={expected_end_time(trade).isoformat()}"
        )


def main():
    if len(sys.argv) < 2:
        print("Usage: python -m tradedesk.cli <command>")
        print("Commands: create-admin, create-user, settle <trade_id>, stuck")
        sys.exit(1)

    setup_logging()
    command = sys.argv[1]
    if command == "create-admin":
        create_user(role="admin")
    elif command == "create-user":
        create_user(role="user")
    elif command == "settle":
        if len(sys.argv) < 3 or not sys.argv[2].isdigit():
            print("Usage: python -m tradedesk.cli settle <trade_id>")
            sys.exit(1)
        settle(int(sys.argv[2]))
    elif command == "stuck":
        list_stuck()
    else:
        print(f"Unknown command: {command}")
        sys.exit(1)


if __name__ == "__main__":
    main()
