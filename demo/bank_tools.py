"""In-memory banking tools used by the demo agents."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List

from langchain_core.tools import tool

_BALANCES: Dict[str, Decimal] = {
    "checking": Decimal("1523.40"),
    "savings": Decimal("8800.00"),
}
_TRANSACTIONS: List[Dict[str, str]] = [
    {"date": "2025-10-01", "account": "checking", "amount": "-42.10", "memo": "Groceries"},
    {"date": "2025-10-03", "account": "checking", "amount": "2100.00", "memo": "Salary"},
    {"date": "2025-10-05", "account": "savings", "amount": "300.00", "memo": "Monthly transfer"},
]


@tool
def get_balance(account: str = "checking") -> str:
    """Return the current balance of an account.

    Args:
        account: Account name, "checking" or "savings"
    """
    key = account.strip().lower()
    if key not in _BALANCES:
        raise ValueError(f"Unknown account '{account}', expected one of {sorted(_BALANCES)}")
    return f"{key} balance: ${_BALANCES[key]:.2f}"


@tool
def list_transactions(account: str = "checking", limit: int = 5) -> str:
    """List the most recent transactions of an account.

    Args:
        account: Account name, "checking" or "savings"
        limit: Maximum number of transactions to return
    """
    key = account.strip().lower()
    rows = [row for row in _TRANSACTIONS if row["account"] == key][-max(1, limit):]
    if not rows:
        return f"No transactions for {key}"
    return "\n".join(f"{row['date']}  {row['amount']:>9}  {row['memo']}" for row in rows)


@tool
def open_ticket(summary: str) -> str:
    """Open a support ticket and return its reference."""
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    return f"Ticket SUP-{stamp} opened: {summary}"


__all__ = ["get_balance", "list_transactions", "open_ticket"]
