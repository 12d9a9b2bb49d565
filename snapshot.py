"""
Snapshot storage: the flattened allocator state written to a database
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import sqlalchemy
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from errors import CorruptSnapshot, SnapshotMissing
from models import SNAPSHOT_ID, Allocation, Base, FreePool, SnapshotInfo

logger = logging.getLogger(__name__)


@dataclass
class Snapshot:
    """Free pool CIDRs and allocated identifiers"""

    free: List[str] = field(default_factory=list)
    allocated: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"free": list(self.free), "allocated": list(self.allocated)}


class SnapshotStore:
    """Reads and writes a single Snapshot through SQLAlchemy"""

    def __init__(self, url: str):
        self.url = url
        self.engine = sqlalchemy.create_engine(url)
        self.Session = sessionmaker(bind=self.engine)

    def __repr__(self):
        return f"<SnapshotStore {self.url}>"

    @property
    def path(self) -> Optional[str]:
        """Database file for SQLite URLs, None otherwise"""
        url = self.engine.url
        if url.get_backend_name() != "sqlite":
            return None
        if not url.database or url.database == ":memory:":
            return None
        return url.database

    def session(self):
        return self.Session()

    def write(self, snapshot: Snapshot) -> None:
        """Replace whatever snapshot is stored with this one"""
        Base.metadata.create_all(self.engine)
        with self.session() as session, session.begin():
            session.query(FreePool).delete()
            session.query(Allocation).delete()
            session.query(SnapshotInfo).delete()

            session.add_all([FreePool(cidr=cidr) for cidr in snapshot.free])
            session.add_all([Allocation(key=key) for key in snapshot.allocated])
            session.add(
                SnapshotInfo(
                    id=SNAPSHOT_ID,
                    saved_at=datetime.now(),
                    free_count=len(snapshot.free),
                    allocated_count=len(snapshot.allocated),
                )
            )
        logger.debug(
            "Wrote snapshot to %s: %d free, %d allocated",
            self.url,
            len(snapshot.free),
            len(snapshot.allocated),
        )

    def read(self) -> Snapshot:
        try:
            if not sqlalchemy.inspect(self.engine).has_table(SnapshotInfo.__tablename__):
                raise SnapshotMissing(f"No snapshot saved in {self.url}")

            with self.session() as session:
                if session.get(SnapshotInfo, SNAPSHOT_ID) is None:
                    raise SnapshotMissing(f"No snapshot saved in {self.url}")

                free = [
                    row.cidr for row in session.query(FreePool).order_by(FreePool.id)
                ]
                allocated = [
                    row.key
                    for row in session.query(Allocation).order_by(Allocation.id)
                ]
        except SQLAlchemyError as e:
            raise CorruptSnapshot(f"Unable to read snapshot from {self.url}: {e}") from e

        return Snapshot(free=free, allocated=allocated)

    def info(self) -> Optional[SnapshotInfo]:
        """The marker row of the stored snapshot, if there is one"""
        try:
            if not sqlalchemy.inspect(self.engine).has_table(SnapshotInfo.__tablename__):
                return None
            with self.session() as session:
                return session.get(SnapshotInfo, SNAPSHOT_ID)
        except SQLAlchemyError as e:
            raise CorruptSnapshot(f"Unable to read snapshot from {self.url}: {e}") from e

    def discard(self) -> Optional[str]:
        """
        Get rid of an unreadable snapshot so the next write starts clean.
        SQLite files are moved aside and the new name is returned; other
        databases have their snapshot tables dropped.
        """
        self.engine.dispose()

        path = self.path
        if path is not None and os.path.exists(path):
            moved = f"{path}.corrupt-{datetime.now().strftime('%Y%m%d_%H%M%S')}"
            os.replace(path, moved)
            logger.warning("Moved unreadable snapshot %s to %s", path, moved)
            return moved

        try:
            Base.metadata.drop_all(self.engine)
        except SQLAlchemyError as e:
            raise CorruptSnapshot(f"Unable to drop snapshot tables in {self.url}: {e}") from e
        logger.warning("Dropped unreadable snapshot tables in %s", self.url)
        return None

    def dispose(self) -> None:
        self.engine.dispose()
