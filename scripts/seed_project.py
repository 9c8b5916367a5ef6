"""Create a merchant project and print a freshly issued API key.

Usage:
    DATABASE_URL=postgresql+asyncpg://... python scripts/seed_project.py "Toko Budi" toko-budi \
        [--webhook-url https://merchant.example/webhooks] [--webhook-secret s3cret]
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from apps.api.app.core.config import get_settings  # noqa: E402
from apps.api.app.core.security import (  # noqa: E402
    api_key_display_prefix,
    generate_api_key,
    hash_api_key,
)
from apps.api.app.db import Database  # noqa: E402
from apps.api.app.domain.projects import ApiKey, Project  # noqa: E402
from apps.api.app.repositories.projects import SqlAlchemyProjectsRepository  # noqa: E402


async def seed(args: argparse.Namespace) -> str:
    database = Database.from_settings(get_settings())
    try:
        async with database.sessionmaker() as session:
            repo = SqlAlchemyProjectsRepository(session)
            project = await repo.create(
                Project(
                    name=args.name,
                    app_slug=args.slug,
                    webhook_url=args.webhook_url,
                    webhook_secret=args.webhook_secret,
                    payout_bank_name=args.bank_name,
                    payout_account_name=args.account_name,
                    payout_account_number=args.account_number,
                )
            )
            raw_key = generate_api_key()
            await repo.add_api_key(
                ApiKey(
                    project_id=project.id,
                    key_prefix=api_key_display_prefix(raw_key),
                    key_hash=hash_api_key(raw_key),
                )
            )
            print(f"Project {project.name} ({project.id})")
            return raw_key
    finally:
        await database.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("name")
    parser.add_argument("slug")
    parser.add_argument("--webhook-url")
    parser.add_argument("--webhook-secret")
    parser.add_argument("--bank-name")
    parser.add_argument("--account-name")
    parser.add_argument("--account-number")
    raw_key = asyncio.run(seed(parser.parse_args()))
    print(f"API key (shown once): {raw_key}")


if __name__ == "__main__":
    main()
