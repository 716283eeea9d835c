"""Transaction-scoped locks keyed on natural keys (teacher+day+slot, teacher+date).

Postgres: pg_advisory_xact_lock, released on commit/rollback.
Other dialects (SQLite in tests) serialize writers already, so this is a no-op there.
"""

import hashlib
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession


def lock_key(*parts: Any) -> int:
    """Stable signed 64-bit key for the given parts."""
    raw = "|".join(str(p) for p in parts).encode("utf-8")
    return int.from_bytes(hashlib.blake2b(raw, digest_size=8).digest(), "big", signed=True)


async def acquire_xact_lock(db: AsyncSession, *parts: Any) -> None:
    if db.get_bind().dialect.name != "postgresql":
        return
    await db.execute(select(func.pg_advisory_xact_lock(lock_key(*parts))))
