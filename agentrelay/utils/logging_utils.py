"""Logging utilities for agentrelay."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

LOGS_DIR = Path("logs")

LOGGER_NAME = "agentrelay"


def setup_logging(level: int = logging.INFO, log_dir: Optional[Path] = None) -> logging.Logger:
    """Setup logging configuration for agentrelay.

    Args:
        level: Console logging level is WARNING; ``level`` applies to the file handler
        log_dir: Directory for the session log file (default: ./logs)

    Returns:
        Configured logger instance
    """
    log_dir = log_dir or LOGS_DIR
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"agentrelay_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)  # Capture all child logs, handlers filter
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    # File handler (detailed logs)
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    # Console handler (user-friendly)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    logger.info("=" * 80)
    logger.info("agentrelay session started")
    logger.info(f"Log file: {log_file}")
    logger.info("=" * 80)

    return logger


def log_tool_call(logger: logging.Logger, tool_name: str, args: Dict[str, Any]) -> None:
    """Log tool invocation.

    Args:
        logger: Logger instance
        tool_name: Name of the tool being called
        args: Tool arguments
    """
    logger.info(f"Tool call: {tool_name}")
    logger.debug(f"  Arguments: {json.dumps(args, ensure_ascii=False, indent=2, default=str)}")


def log_tool_result(
    logger: logging.Logger,
    tool_name: str,
    result: Any,
    success: bool = True,
    cache_hit: bool = False,
) -> None:
    """Log tool execution result.

    Args:
        logger: Logger instance
        tool_name: Name of the tool
        result: Tool output or error message
        success: Whether the tool executed successfully
        cache_hit: Whether the result came from the tool cache
    """
    status = "✓ Success" if success else "✗ Failed"
    if cache_hit:
        status += " (cached)"
    logger.info(f"Tool result: {tool_name} - {status}")

    result_str = str(result)
    if len(result_str) > 500:
        result_str = result_str[:500] + "... (truncated)"
    logger.debug(f"  Result: {result_str}")


def log_model_selection(logger: logging.Logger, agent: str, model_id: str, reason: str = "") -> None:
    """Log which model serves an agent turn."""
    logger.info(f"Model selected for {agent}: {model_id}")
    if reason:
        logger.debug(f"  Reason: {reason}")


def log_handoff(logger: logging.Logger, source: str, target: str, chain: Sequence[str], reason: str = "") -> None:
    """Log an accepted handoff between agents.

    Args:
        logger: Logger instance
        source: Agent handing off
        target: Agent taking over
        chain: Handoff chain after the handoff
        reason: Reason given by the model, if any
    """
    logger.info(f"Handoff: {source} → {target}")
    logger.info(f"  Chain: {list(chain)}")
    if reason:
        logger.info(f"  Reason: {reason}")


def log_error(logger: logging.Logger, error: BaseException, context: str = "") -> None:
    """Log error with context.

    Args:
        logger: Logger instance
        error: Exception instance
        context: Additional context about where the error occurred
    """
    logger.error(f"Error occurred: {type(error).__name__}: {str(error)}")
    if context:
        logger.error(f"  Context: {context}")
    logger.debug("Full traceback:", exc_info=error)


def log_user_message(logger: logging.Logger, content: str) -> None:
    """Log user input."""
    logger.info(f"User input: {content[:100]}{'...' if len(content) > 100 else ''}")


def log_agent_response(logger: logging.Logger, content: str) -> None:
    """Log agent response."""
    logger.info(f"Agent response: {content[:100]}{'...' if len(content) > 100 else ''}")


def log_prompt(logger: logging.Logger, agent: str, prompt: str, max_length: int = 500) -> None:
    """Log the rendered system prompt for an agent turn (truncated)."""
    preview = prompt if len(prompt) <= max_length else prompt[:max_length] + "... (truncated)"
    logger.debug(f"System prompt for {agent}:\n{preview}")


def log_visible_tools(logger: logging.Logger, agent: str, tools: list) -> None:
    """Log the tool surface offered to the model for one turn."""
    tool_names = [t.name if hasattr(t, "name") else str(t) for t in tools]
    logger.info(f"Visible tools for {agent}: [{', '.join(tool_names)}]")


def log_routing_decision(logger: logging.Logger, from_node: str, decision: str, reason: str = "") -> None:
    """Log routing decision.

    Args:
        logger: Logger instance
        from_node: Source node making the decision
        decision: Routing destination
        reason: Reason for the routing decision
    """
    logger.info(f"Routing decision from {from_node}: → {decision}")
    if reason:
        logger.info(f"  → Reason: {reason}")


def log_node_entry(logger: logging.Logger, node_name: str, state: Dict[str, Any]) -> None:
    """Log node entry with a compact state snapshot.

    Args:
        logger: Logger instance
        node_name: Name of the node being entered
        state: Current execution context
    """
    logger.debug(f"# ENTERING NODE: {node_name}")
    logger.debug(f"  - request_id: {state.get('request_id')}")
    logger.debug(f"  - phase: {state.get('phase')}")
    logger.debug(f"  - active_agent: {state.get('active_agent')}")
    logger.debug(f"  - turns_remaining: {state.get('turns_remaining')}")
    logger.debug(f"  - handoff_chain: {state.get('handoff_chain', [])}")
    logger.debug(f"  - messages: {len(state.get('messages', []))}")

