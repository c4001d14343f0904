"""
List achievement documents that no reference row points at.

These come from create() calls whose reference write failed after the
detail was stored. The script only reports; cleanup is a manual decision.

Usage:
    python scripts/find_orphans.py [--json]
"""
import argparse
import asyncio
import json
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app.core import database, mongo  # noqa: E402
from app.core.logging_config import setup_logging  # noqa: E402
from app.repositories.detail_store import BeanieDetailStore  # noqa: E402
from app.repositories.reference_store import ReferenceStore  # noqa: E402
from app.services.consistency import find_orphans  # noqa: E402


async def main(as_json: bool) -> int:
    setup_logging()
    session_factory = database.init_db()
    await mongo.init_mongo()
    try:
        orphans = await find_orphans(BeanieDetailStore(), ReferenceStore(session_factory))
    finally:
        mongo.close_mongo()
        database.close_db()

    if as_json:
        print(json.dumps([o.model_dump(mode="json") for o in orphans], indent=2))
    else:
        for orphan in orphans:
            state = "deleted" if orphan.is_deleted else "live"
            print(f"{orphan.id}\tstudent={orphan.student_id}\t{state}\t{orphan.title}")
        print(f"{len(orphans)} unreferenced achievement(s)")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--json", action="store_true", help="print JSON instead of a table")
    args = parser.parse_args()
    sys.exit(asyncio.run(main(args.json)))
