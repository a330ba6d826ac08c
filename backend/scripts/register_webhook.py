#!/usr/bin/env python3
"""Register the Telegram webhook for every organization with a bot token."""

import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from config import get_settings
from database import async_session
from models.organization import Organization
from services.telegram_client import TelegramClient, generate_webhook_secret, verify_bot_token

ALLOWED_UPDATES = ["message", "my_chat_member"]


def webhook_url(base_url: str) -> str:
    base_url = base_url.rstrip("/")
    if not base_url.startswith("http"):
        base_url = f"https://{base_url}"
    return f"{base_url}/telegram/webhook"


async def register_webhooks(base_url: str):
    """Set the webhook (and persist a secret if missing) for each organization."""
    url = webhook_url(base_url)

    async with async_session() as db:
        result = await db.execute(
            select(Organization).where(Organization.telegram_bot_token.is_not(None))
        )
        organizations = result.scalars().all()
        print(f"Found {len(organizations)} organizations with bot tokens")

        for org in organizations:
            print(f"\nProcessing: {org.name}")
            valid, bot_username = await verify_bot_token(org.telegram_bot_token)
            if not valid:
                print(f"  Skipping, bot token rejected: {bot_username}")
                continue
            print(f"  Bot: @{bot_username}")

            client = TelegramClient(org.telegram_bot_token)
            secret = org.telegram_webhook_secret or generate_webhook_secret()

            response = await client.set_webhook(url, secret_token=secret, allowed_updates=ALLOWED_UPDATES)
            if not response.ok:
                print(f"  Failed to register webhook: {response.description}")
                continue

            print(f"  Webhook registered: {url}")
            if not org.telegram_webhook_secret:
                org.telegram_webhook_secret = secret
                await db.commit()
                print("  Saved webhook secret")

            info = await client.get_webhook_info()
            if info.ok and info.result:
                print(f"  Pending updates: {info.result.get('pending_update_count', 0)}")
                if info.result.get("last_error_message"):
                    print(f"  Last error: {info.result['last_error_message']}")


if __name__ == "__main__":
    base = sys.argv[1] if len(sys.argv) > 1 else get_settings().public_base_url
    if not base:
        print("Usage: python3 register_webhook.py [public base URL]")
        sys.exit(1)

    asyncio.run(register_webhooks(base))
