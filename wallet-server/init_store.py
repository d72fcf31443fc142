"""
初始化本地存储
创建本地数据表，并为指定档案签发开发用访问令牌
"""
import argparse
import asyncio

from attention_wallet.core.security import create_access_token
from attention_wallet.infrastructure.database.session import dispose_engine, init_db


async def init_store(profile_id: str, role: str) -> None:
    """创建本地数据表并输出访问令牌"""
    await init_db()
    await dispose_engine()

    token = create_access_token(profile_id, role)
    print(f"本地存储已初始化，档案 {profile_id} 的访问令牌:")
    print(token)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="初始化本地存储并签发开发令牌")
    parser.add_argument("profile_id", help="档案 ID")
    parser.add_argument("--role", default="ward", choices=["guardian", "ward"])
    args = parser.parse_args()
    asyncio.run(init_store(args.profile_id, args.role))
