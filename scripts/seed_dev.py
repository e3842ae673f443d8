#!/usr/bin/env python
"""Seed development database with a small library.

Seeds one user's profile, two Kindle books and a handful of quotes so the
daily reflection and delivery jobs have something to pick from.

Constraints:
- Refuses to run in staging or prod (UNEARTHED_ENV check)
- Idempotent: re-running reports every row as existing
- Quotes carry no notes, so no encryption key is needed
- Never runs automatically (manual invocation only)

Usage:
    cd python && DATABASE_URL=... SEED_USER_ID=user_... python ../scripts/seed_dev.py
"""

import os
import sys

FIXTURE_SOURCES = [
    {"title": "Meditations", "author": "Marcus Aurelius"},
    {"title": "The Old Man and the Sea", "author": "Ernest Hemingway"},
]

FIXTURE_QUOTES = {
    "Meditations": [
        ("The happiness of your life depends upon the quality of your thoughts.", "12"),
        ("Waste no more time arguing what a good man should be. Be one.", "240"),
    ],
    "The Old Man and the Sea": [
        ("But man is not made for defeat. A man can be destroyed but not defeated.", "1033"),
    ],
}


def main():
    # 1. Environment check (hard fail in staging/prod)
    env = os.getenv("UNEARTHED_ENV", "local")
    if env not in ("local", "test"):
        print(f"ERROR: seed_dev.py refuses to run in UNEARTHED_ENV={env}")
        sys.exit(1)

    # 2. Check DATABASE_URL
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        print("ERROR: DATABASE_URL environment variable must be set")
        sys.exit(1)

    user_id = os.getenv("SEED_USER_ID", "user_dev")

    from unearthed.db.session import session_scope
    from unearthed.services.bootstrap import ensure_profile
    from unearthed.services.crypto import generate_user_key
    from unearthed.services.ingestion import ingest_quotes, ingest_sources

    with session_scope() as db:
        # 3. Idempotent seeding
        ensure_profile(db, user_id, utc_offset=0)
        sources = ingest_sources(db, user_id, FIXTURE_SOURCES)
        by_title = {s.title: s.id for s in sources.inserted + sources.existing}

        records = [
            {"content": content, "location": location, "sourceId": str(by_title[title])}
            for title, quotes in FIXTURE_QUOTES.items()
            for content, location in quotes
        ]
        quotes = ingest_quotes(db, user_id, generate_user_key(), records)

    # 4. Report
    db_display = database_url.split("@")[1] if "@" in database_url else database_url
    print(f"Database: {db_display}")
    print(f"UNEARTHED_ENV: {env}")
    print(f"User: {user_id}")
    print()
    print(f"Sources: {len(sources.inserted)} created, {len(sources.existing)} existing")
    print(f"Quotes: {len(quotes.inserted)} created, {len(quotes.existing)} existing")


if __name__ == "__main__":
    main()
