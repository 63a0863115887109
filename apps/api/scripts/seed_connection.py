import sys
import os
import asyncio
import argparse

# Add parent dir to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import async_session_maker, engine, Base
import models  # noqa: F401
from ingestion.facebook import create_graph_client
from models.website import Website
from models.website_connection import WebsiteConnection
from services.crypto import encrypt_token
from services.session_token import issue_session_token
from services.tokens import create_connection


def _parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Register a Facebook connection and optionally subscribe a website to it."
    )
    parser.add_argument("--organization-id", required=True)
    parser.add_argument("--platform-user-id", required=True)
    parser.add_argument("--access-token", required=True, help="Short-lived user access token from the OAuth flow")
    parser.add_argument("--page-id", default=None)
    parser.add_argument("--name", default=None)
    parser.add_argument("--website-url", default=None, help="Subscriber base URL, e.g. https://blog.example.com")
    parser.add_argument("--website-name", default=None)
    parser.add_argument("--signing-key", default=None, help="Shared secret used to sign webhooks")
    parser.add_argument("--user-id", default=None, help="Also print an API session token for this identity user")
    return parser.parse_args(argv)


async def main(argv=None):
    args = _parse_args(argv)
    if args.website_url and not args.signing_key:
        print("❌ --signing-key is required when --website-url is given")
        sys.exit(1)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_maker() as db:
        async with create_graph_client() as graph:
            print("📡 Exchanging token with Facebook...")
            connection = await create_connection(
                db,
                graph,
                organization_id=args.organization_id,
                platform_user_id=args.platform_user_id,
                access_token=args.access_token,
                page_id=args.page_id,
                name=args.name,
            )
        print(f"✅ Connection {connection.id} saved (token expires {connection.token_expires_at})")

        if args.website_url:
            website = Website(
                organization_id=args.organization_id,
                name=args.website_name or args.website_url,
                webhook_url=args.website_url,
                signing_key_encrypted=encrypt_token(args.signing_key),
                is_active=True,
            )
            db.add(website)
            await db.flush()
            db.add(WebsiteConnection(website_id=website.id, connection_id=connection.id))
            await db.commit()
            print(f"✅ Website {website.id} subscribed to connection {connection.id}")

    if args.user_id:
        session = issue_session_token(args.user_id)
        print(f"🔑 Session token for {session.user_id} (expires {session.expires_at}):")
        print(session.token)


if __name__ == "__main__":
    asyncio.run(main())
