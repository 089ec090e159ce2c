"""CLI 入口模块 -- python -m sylvia.agents <command>

支持的命令：
  run-orchestrator    启动事件编排循环（Ctrl+C 停止）
  daily-analysis      为全部活跃用户发布 DAILY_ANALYSIS 事件
  prune               清理保留期（SYLVIA_RETENTION_DAYS）之前的已消费事件与步骤记忆
"""

import asyncio
import signal
import sys

from sylvia.core.config import get_db_path
from sylvia.core.store import create_store_group
from sylvia.provider import build_llm_service, load_provider_config

from .config import load_analyzer_settings
from .orchestrator import build_orchestrator

_COMMANDS = {
    "run-orchestrator": "启动事件编排循环（Ctrl+C 停止）",
    "daily-analysis": "为全部活跃用户发布 DAILY_ANALYSIS 事件",
    "prune": "清理保留期之前的已消费事件与步骤记忆",
}


def _print_usage() -> None:
    print("用法: python -m sylvia.agents <command>")
    print("命令:")
    for name, help_text in _COMMANDS.items():
        print(f"  {name:<20}{help_text}")


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        _print_usage()
        sys.exit(1)

    command = sys.argv[1]

    if command == "run-orchestrator":
        asyncio.run(run_orchestrator())
    elif command == "daily-analysis":
        asyncio.run(daily_analysis())
    elif command == "prune":
        asyncio.run(prune())
    else:
        print(f"未知命令: {command}")
        print(f"可用命令: {', '.join(_COMMANDS)}")
        sys.exit(1)


async def run_orchestrator() -> None:
    db_path = get_db_path()
    print(f"数据库路径: {db_path}")

    stores = await create_store_group(db_path)
    llm_service = build_llm_service(load_provider_config())
    orchestrator = build_orchestrator(stores, llm_service, load_analyzer_settings())

    stop_requested = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_requested.set)

    try:
        await orchestrator.start()
        print("编排器已启动，按 Ctrl+C 停止")
        await stop_requested.wait()
        print("正在停止（等待进行中的处理器完成）...")
        await orchestrator.stop()
    finally:
        await stores.close()
    print("已停止")


async def daily_analysis() -> None:
    db_path = get_db_path()
    print(f"数据库路径: {db_path}")

    stores = await create_store_group(db_path)
    try:
        orchestrator = build_orchestrator(
            stores,
            build_llm_service(load_provider_config()),
            load_analyzer_settings(),
        )
        count = await orchestrator.schedule_daily_analysis()
        print(f"已为 {count} 个活跃用户发布每日分析事件")
    finally:
        await stores.close()


async def prune() -> None:
    db_path = get_db_path()
    print(f"数据库路径: {db_path}")

    stores = await create_store_group(db_path)
    try:
        orchestrator = build_orchestrator(stores, build_llm_service(load_provider_config()))
        result = await orchestrator.prune()
        removed = sum(result.events.values())
        print(f"已删除 {removed} 条事件、{result.workflow_steps} 条步骤记忆")
    finally:
        await stores.close()


if __name__ == "__main__":
    main()
