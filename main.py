"""Interactive CLI for multi-turn conversations with an agentrelay runtime."""

from __future__ import annotations

import asyncio
import sys
import uuid
from pathlib import Path
from typing import List, Optional

from langchain_core.messages import BaseMessage

from agentrelay.config import get_settings
from agentrelay.runtime import build_runtime
from agentrelay.usage import UsageAccumulator, summarize_usage
from agentrelay.utils import log_agent_response, log_error, setup_logging

DEFAULT_CONFIG = Path(__file__).parent / "demo" / "agents.yaml"


def _print_catalog(runtime) -> None:
    print("\n可用 agents:")
    for agent in runtime.registry.list_agents():
        targets = ", ".join(sorted(agent.handoff_targets)) or "-"
        print(f"  {agent.name:<12} turns={agent.max_turns:<3} → {targets}  {agent.description}")
    print()


def _print_help() -> None:
    print("命令列表:")
    print("  /quit, /exit     - 退出程序")
    print("  /reset           - 重置当前会话（清空历史和用量）")
    print("  /agents          - 列出所有 agent")
    print("  /agent <name>    - 下一条消息直接交给指定 agent")
    print("  /tool <name>     - 下一条消息交给拥有该工具的 agent")
    print("  /usage           - 显示本次会话的累计用量")
    print()


async def async_main(config_path: Optional[str] = None) -> None:
    settings = get_settings()
    logger = setup_logging(log_dir=Path(settings.observability.log_dir))

    try:
        runtime = build_runtime(
            config_path or settings.observability.agents_config_path or DEFAULT_CONFIG,
            settings=settings,
        )
    except Exception as e:
        print(f"\n❌ 启动失败: {e}")
        log_error(logger, e, context="async_main() initialization")
        return

    entry_agent = "triage" if "triage" in runtime.registry else runtime.registry.list_agents()[0].name
    session_id = str(uuid.uuid4())
    history: List[BaseMessage] = []
    session_usage = UsageAccumulator(
        max_cost_usd=settings.governance.max_cost_usd,
        warning_ratio=settings.governance.budget_warning_ratio,
        on_budget_warning=lambda totals: print(f"\n⚠️  会话花费已接近上限: {summarize_usage(totals)}"),
    )
    agent_choice: Optional[str] = None
    tool_choice: Optional[str] = None

    print("agentrelay CLI 已就绪。")
    print(f"会话 ID: {session_id[:8]}...  入口 agent: {entry_agent}")
    print(f"日志文件: {logger.handlers[0].baseFilename if logger.handlers else 'N/A'}")
    _print_catalog(runtime)
    _print_help()
    logger.info(f"New session started: {session_id}")

    while True:
        try:
            loop = asyncio.get_running_loop()
            user_input = await loop.run_in_executor(None, lambda: input("You> ").strip())
        except (KeyboardInterrupt, EOFError):
            print("\n再见！")
            logger.info("Session ended by user")
            break

        if not user_input:
            continue

        command = user_input.lower()
        if command in {"/quit", "/exit"}:
            print("会话结束。")
            logger.info("Session ended by /quit command")
            break

        if command == "/reset":
            session_id = str(uuid.uuid4())
            history = []
            session_usage = UsageAccumulator(
                max_cost_usd=settings.governance.max_cost_usd,
                warning_ratio=settings.governance.budget_warning_ratio,
            )
            agent_choice = None
            tool_choice = None
            print(f"状态已重置。新会话 ID: {session_id[:8]}...")
            logger.info(f"State reset with new session_id: {session_id}")
            continue

        if command == "/agents":
            _print_catalog(runtime)
            continue

        if command == "/usage":
            print(f"本次会话: {session_usage.summarize(detailed=True)}")
            if session_usage.remaining_budget is not None:
                print(f"剩余预算: ${session_usage.remaining_budget}")
            continue

        if command.startswith("/agent "):
            name = user_input[7:].strip()
            if name not in runtime.registry:
                print(f"未知 agent: {name}")
            else:
                agent_choice = name
                print(f"[下一条消息将直接交给 {name}]")
            continue

        if command.startswith("/tool "):
            tool_choice = user_input[6:].strip()
            print(f"[下一条消息将交给拥有工具 {tool_choice} 的 agent]")
            continue

        remaining = session_usage.remaining_budget
        if remaining is not None and remaining <= 0:
            print("会话预算已用尽，请使用 /reset 开始新会话。")
            continue

        handle = runtime.stream(
            entry_agent,
            user_input,
            {"user_name": "CLI user"},
            history=history,
            session_id=session_id,
            agent_choice=agent_choice,
            tool_choice=tool_choice,
            max_cost_usd=remaining,
        )
        agent_choice = None
        tool_choice = None

        try:
            print("Agent> ", end="", flush=True)
            current_agent = entry_agent
            async for event in handle:
                if event.type == "text-delta":
                    print(event.text, end="", flush=True)
                elif event.type == "agent-handoff":
                    current_agent = event.data.get("target", current_agent)
                    print(f"\n[handoff → {current_agent}]\nAgent> ", end="", flush=True)
                elif event.type == "tool-result":
                    print(f"\n[tool] {event.data.get('tool_name')}", end="", flush=True)
                elif event.type == "budget-warning":
                    print("\n[⚠️ 预算即将用尽]", end="", flush=True)
            result = await handle.result()
        except (KeyboardInterrupt, asyncio.CancelledError):
            handle.cancel()
            result = await handle.result()
        except Exception as e:
            print(f"\n❌ 发生错误: {e}")
            log_error(logger, e, context="main loop - runtime.stream()")
            print("请查看日志文件获取详细信息\n")
            continue

        if not result.ok or not result.text:
            # Errors and partial answers are not streamed as deltas
            print(f"\n{result.text}", end="")
        print()

        log_agent_response(logger, result.text)
        history = list(result.messages)
        totals = session_usage.add(result.usage)
        if result.handoff_chain:
            print(f"[chain: {entry_agent} → {' → '.join(result.handoff_chain)}]")
        print(f"[{result.outcome}] {summarize_usage(result.usage)} | 会话累计 {summarize_usage(totals)}\n")


def main() -> None:
    """Entry point that runs the async main function."""
    config_path = sys.argv[1] if len(sys.argv) > 1 else None
    asyncio.run(async_main(config_path))


if __name__ == "__main__":
    main()
