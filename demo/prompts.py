"""Instruction factories for the demo agents."""

from __future__ import annotations

from typing import Any, Mapping


def operations_prompt(context: Mapping[str, Any]) -> str:
    customer = context.get("user_name") or "the customer"
    return (
        f"You are the operations agent of a retail bank serving {customer}. "
        "Use the account tools to answer balance and transaction questions. "
        "Quote amounts exactly as the tools return them."
    )
