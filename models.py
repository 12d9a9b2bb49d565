"""
SQLAlchemy ORM models for allocator snapshots
One snapshot per database: free pools, allocated identifiers and a marker row
"""

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()

SNAPSHOT_ID = 1


class FreePool(Base):
    """A free pool, stored as CIDR text - e.g., 172.16.128.0/17"""

    __tablename__ = "free_pools"

    # Insertion order is the free-list order
    id = Column(Integer, primary_key=True, autoincrement=True)
    cidr = Column(String(18), nullable=False)

    def __repr__(self):
        return f"<FreePool {self.cidr}>"


class Allocation(Base):
    """A leased pool (CIDR text) or a leased address (dotted text)"""

    __tablename__ = "allocations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String(18), nullable=False, unique=True)

    def __repr__(self):
        return f"<Allocation {self.key}>"

    @property
    def is_pool(self):
        return "/" in self.key


class SnapshotInfo(Base):
    """Marks that a snapshot has been written, and when"""

    __tablename__ = "snapshot_info"

    id = Column(Integer, primary_key=True)
    saved_at = Column(DateTime, nullable=False)
    free_count = Column(Integer, nullable=False, default=0)
    allocated_count = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<SnapshotInfo {self.saved_at}: {self.free_count} free, {self.allocated_count} allocated>"
