"""Pytest configuration and fixtures for all tests.

This file is automatically loaded by pytest and ensures proper test environment setup.
"""

import sys
from pathlib import Path

import pytest

# Ensure project root is in PYTHONPATH for imports to work
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

# Shared test doubles live next to this file
tests_dir = Path(__file__).parent
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))

from relay_fakes import CallCounter, ScriptedProvider, balance_tool, failing_tool  # noqa: E402


@pytest.fixture
def provider():
    """Empty scripted provider; tests queue responses with provider.queue(...)."""
    return ScriptedProvider()


@pytest.fixture
def balance_calls():
    return CallCounter()


@pytest.fixture
def get_balance(balance_calls):
    return balance_tool(balance_calls)


@pytest.fixture
def broken_ledger():
    return failing_tool("read_ledger", "ledger service unavailable")
