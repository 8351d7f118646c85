"""Management CLI.

Usage:
    python -m oliveflow.cli seed-boxes          # Create missing factory boxes 1..600
    python -m oliveflow.cli reset-boxes         # Release every in-use factory box
    python -m oliveflow.cli recompute-ledgers   # Rebuild all farmer ledgers
"""

import asyncio
import sys

from oliveflow.database import async_session, engine
from oliveflow.services.box_registry import reset_factory_pool, seed_factory_pool
from oliveflow.services.ledger import recompute_all_ledgers


async def _run(operation) -> int:
    try:
        async with async_session() as db, db.begin():
            return await operation(db)
    finally:
        await engine.dispose()


def seed_boxes():
    created = asyncio.run(_run(seed_factory_pool))
    print(f"  Created {created} factory box(es)")


def reset_boxes():
    released = asyncio.run(_run(reset_factory_pool))
    print(f"  Released {released} box(es)")


def recompute_ledgers():
    count = asyncio.run(_run(recompute_all_ledgers))
    print(f"  Recomputed {count} farmer ledger(s)")


COMMANDS = {
    "seed-boxes": seed_boxes,
    "reset-boxes": reset_boxes,
    "recompute-ledgers": recompute_ledgers,
}


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    cmd = argv[0] if argv else ""
    command = COMMANDS.get(cmd)
    if command is None:
        print(f"Usage: python -m oliveflow.cli [{'|'.join(COMMANDS)}]")
        return 1
    command()
    return 0


if __name__ == "__main__":
    sys.exit(main())
