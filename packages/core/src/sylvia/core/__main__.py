"""CLI 入口模块 -- python -m sylvia.core <command>

支持的命令：
  init-db             创建数据库表与索引
  seed-achievements   写入默认成就目录
"""

import asyncio
import sys

from .config import get_db_path

_COMMANDS = {
    "init-db": "创建数据库表与索引",
    "seed-achievements": "写入默认成就目录",
}


def _print_usage() -> None:
    print("用法: python -m sylvia.core <command>")
    print("命令:")
    for name, help_text in _COMMANDS.items():
        print(f"  {name:<20}{help_text}")


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        _print_usage()
        sys.exit(1)

    command = sys.argv[1]

    if command == "init-db":
        asyncio.run(init_database())
    elif command == "seed-achievements":
        asyncio.run(seed_achievements())
    else:
        print(f"未知命令: {command}")
        print(f"可用命令: {', '.join(_COMMANDS)}")
        sys.exit(1)


async def init_database() -> None:
    from .store import create_store_group

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")

    store_group = await create_store_group(db_path, seed_achievements=False)
    await store_group.close()
    print("初始化完成")


async def seed_achievements() -> None:
    from .store import create_store_group

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")

    store_group = await create_store_group(db_path, seed_achievements=False)
    try:
        async with store_group.tx.atomic():
            count = await store_group.achievement_store.seed_defaults()
        print(f"写入 {count} 个成就")
    finally:
        await store_group.close()


if __name__ == "__main__":
    main()
