"""
Process-wide key/value store backed by the `meta` table.

Holds small string values: settings, sync metadata and cache envelopes.
Writes are single INSERT ... ON CONFLICT statements, so a reader never
sees a half-written value.
"""
from typing import Dict, Optional

from sqlalchemy.dialects.sqlite import insert
from sqlmodel import Session, select

from marketplace.models.meta import MetaEntry


class KeyValueStore:
    """get / put / delete / scan over string keys."""

    def __init__(self, engine):
        self.engine = engine

    def get(self, key: str) -> Optional[str]:
        with Session(self.engine) as s:
            entry = s.get(MetaEntry, key)
            return entry.value if entry else None

    def put(self, key: str, value: str) -> None:
        stmt = insert(MetaEntry).values(key=key, value=value)
        stmt = stmt.on_conflict_do_update(
            index_elements=["key"],
            set_={"value": stmt.excluded["value"]},
        )
        with self.engine.begin() as conn:
            conn.execute(stmt)

    def delete(self, key: str) -> bool:
        with Session(self.engine) as s:
            entry = s.get(MetaEntry, key)
            if entry is None:
                return False
            s.delete(entry)
            s.commit()
            return True

    def scan(self, prefix: str = "") -> Dict[str, str]:
        """Return every key starting with prefix, ordered by key."""
        query = select(MetaEntry).order_by(MetaEntry.key)
        if prefix:
            query = query.where(MetaEntry.key.startswith(prefix, autoescape=True))
        with Session(self.engine) as s:
            return {e.key: e.value for e in s.exec(query).all()}
