#!/usr/bin/env python3
"""Discover and index every document under the Drive root folder.

Usage:
    python scripts/full_reindex.py [--folder FOLDER_ID] [--no-shared]
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add the project root to the path
sys.path.insert(0, str(Path(__file__).parent.parent))

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def main(folder_id: str | None, include_shared: bool, max_results: int) -> int:
    """Run a full reindex. Returns the number of failed documents."""
    from sables.config import get_settings
    from sables.drive.client import get_drive_client
    from sables.drive.discovery import DiscoveryOptions
    from sables.indexing.reindex import reindex_folder
    from sables.indexing.search_index import get_search_index
    from sables.services.database import async_session_maker, init_db

    settings = get_settings()
    folder_id = folder_id or settings.drive_root_folder_id
    if not folder_id:
        logger.error("No folder given and DRIVE_ROOT_FOLDER_ID is not set")
        return 1

    await init_db()
    options = DiscoveryOptions(include_shared_with_me=include_shared, max_results=max_results)

    try:
        async with async_session_maker() as db:
            result = await reindex_folder(db, get_drive_client(), folder_id, options)
    finally:
        await get_search_index().close()

    print(f"Indexed {result.successful} of {result.total} documents ({result.failed} failed)")
    for error in result.errors:
        print(f"  {error['id']}: {error['error']}")
    return result.failed


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Reindex Drive documents")
    parser.add_argument("--folder", default=None, help="Folder ID (defaults to the configured root)")
    parser.add_argument("--no-shared", action="store_true", help="Skip documents shared with the service account")
    parser.add_argument("--max-results", type=int, default=1000)
    args = parser.parse_args()

    failed = asyncio.run(main(args.folder, not args.no_shared, args.max_results))
    sys.exit(1 if failed else 0)
