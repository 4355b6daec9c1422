#!/usr/bin/env python3
"""Initialize the database, create tables and optionally issue activation codes."""

import argparse
import asyncio
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from app.config import get_settings
from app.storage.code_repo import PremiumCodeRepository
from app.storage.database import init_database
from core.activation import generate_code


async def main(code_count: int):
    print("Initializing database...")
    db = await init_database()
    print("Database initialized successfully!")
    print("Tables created: profiles, premium_codes, analysis_history")

    if code_count > 0:
        settings = get_settings()
        codes = [
            generate_code(
                prefix=settings.code_prefix,
                segment=settings.code_segment,
                days_tag=settings.code_days_tag,
            )
            for _ in range(code_count)
        ]
        inserted = await PremiumCodeRepository().create(codes)
        print(f"Issued {inserted} activation codes:")
        for code in codes:
            print(f"  {code}")

    await db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--codes", type=int, default=0, help="number of activation codes to issue")
    args = parser.parse_args()
    asyncio.run(main(args.codes))
