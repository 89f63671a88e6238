"""Handoff hooks for the demo agents."""

from __future__ import annotations

import logging

LOGGER = logging.getLogger(__name__)


def record_transfer(source: str, target: str, reason: str) -> None:
    LOGGER.info(f"Escalated from {source} to {target}: {reason or 'no reason given'}")
