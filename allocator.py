"""
IP Allocator - Buddy-system pools with per-address leases
Free space is kept as power-of-two blocks, one free list per prefix length.
Requests split the smallest sufficient block; releases merge buddies back.
"""

import ipaddress
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Callable, List, Optional, Set, Union

import byteops
from errors import (
    AddressNotAllocated,
    AddressUnavailable,
    CorruptSnapshot,
    DuplicatePool,
    IPAMError,
    InvalidMaskLength,
    PoolExhausted,
    PoolNotAllocated,
)
from pools import (
    ADDRESS_BITS,
    AddressLike,
    Pool,
    PoolLike,
    adjacent,
    as_address,
    as_pool,
    expand,
    format_address,
    overlaps,
    parse_cidr,
    split,
)
from snapshot import Snapshot, SnapshotStore

logger = logging.getLogger(__name__)

NIL_ADDRESS_SPACE = "null"
LOCAL_ADDRESS_SPACE = "local"

MAX_REQUEST_MASK_LENGTH = ADDRESS_BITS - 1

# A leased pool is keyed by its Pool, a leased address by its 4 raw bytes
AllocationKey = Union[Pool, bytes]


class Allocator(ABC):
    """Interface the request-handling driver talks to"""

    @property
    @abstractmethod
    def address_space(self) -> str:
        ...

    @abstractmethod
    def add_pool(self, pool: PoolLike) -> None:
        ...

    @abstractmethod
    def request_pool(self, prefix_length: int) -> Pool:
        ...

    @abstractmethod
    def release_pool(self, pool: PoolLike) -> None:
        ...

    @abstractmethod
    def request_address(
        self, pool: PoolLike, address: Optional[AddressLike] = None
    ) -> ipaddress.IPv4Address:
        ...

    @abstractmethod
    def release_address(self, address: AddressLike) -> None:
        ...


def address_space_of(allocator: Optional[Allocator]) -> str:
    if allocator is None:
        return NIL_ADDRESS_SPACE
    return allocator.address_space


class ReadWriteLock:
    """Any number of readers, or a single writer. Waiting writers go first."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self):
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self):
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class Autosaver:
    """
    Background thread that saves after mutations.

    notify() never blocks. Notifications that arrive while a save is running
    are coalesced into a single trailing save.
    """

    def __init__(self, save: Callable[[], None], name: str = "minipam-autosave"):
        self._save = save
        self._wake = threading.Event()
        self._pending = False
        self._stopping = False
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    def notify(self) -> None:
        self._pending = True
        self._wake.set()

    def close(self, timeout: Optional[float] = None) -> None:
        """Stop the thread after flushing any pending save"""
        self._stopping = True
        self._wake.set()
        self._thread.join(timeout)

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    def _run(self):
        while True:
            self._wake.wait()
            self._wake.clear()

            if self._pending:
                self._pending = False
                try:
                    self._save()
                except Exception:
                    logger.exception("Failed to save allocator snapshot")

            if self._stopping and not self._pending:
                return


class LocalAllocator(Allocator):
    """
    Allocator that keeps its state in process memory.
    It does not coordinate with other processes, so it cannot be shared
    across a cluster. State is persisted to `store` in the background.
    """

    def __init__(self, store: Optional[SnapshotStore] = None, autosave: bool = True):
        self.store = store
        self._lock = ReadWriteLock()
        self._save_lock = threading.Lock()
        self._pools: List[List[Pool]] = []
        self._allocated: Set[AllocationKey] = set()
        self._reset()

        self._autosaver = None
        if store is not None and autosave:
            self._autosaver = Autosaver(self.save)

    @classmethod
    def from_snapshot(cls, store: SnapshotStore, autosave: bool = True):
        """Create an allocator holding the state saved in `store`"""
        allocator = cls(store, autosave=autosave)
        try:
            allocator.load()
        except Exception:
            allocator.close()
            raise
        return allocator

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    @property
    def address_space(self) -> str:
        return LOCAL_ADDRESS_SPACE

    def _reset(self):
        self._pools = [[] for _ in range(ADDRESS_BITS + 1)]
        self._allocated = set()

    def _signal_update(self):
        if self._autosaver is not None:
            self._autosaver.notify()

    # ============ POOLS ============

    def add_pool(self, pool: PoolLike) -> None:
        """Add a subnet to be used in allocations"""
        pool = as_pool(pool)

        with self._lock.write():
            if pool in self._pools[pool.prefix_length]:
                raise DuplicatePool(f"Pool has already been added: {pool}")

            for other in self._free_pools():
                if overlaps(pool, other):
                    raise DuplicatePool(f"Pool {pool} overlaps free pool {other}")
            for other in self._leased_pools():
                if overlaps(pool, other):
                    raise DuplicatePool(f"Pool {pool} overlaps allocated pool {other}")

            self._add_pool_no_lock(pool)
            self._signal_update()

    def _add_pool_no_lock(self, pool: Pool) -> None:
        s = self._pools[pool.prefix_length]
        if pool in s:
            raise DuplicatePool(f"Pool has already been added: {pool}")

        if pool.prefix_length > 0:
            buddy = adjacent(pool)
            if buddy in s:
                # "Merge" the two and add the result instead
                s.remove(buddy)
                logger.debug("Merging %s with its buddy %s", pool, buddy)
                self._add_pool_no_lock(expand(pool))
                return

        s.append(pool)

    def request_pool(self, prefix_length: int) -> Pool:
        """Allocate a pool of the requested size"""
        if prefix_length < 0 or prefix_length > MAX_REQUEST_MASK_LENGTH:
            raise InvalidMaskLength(
                f"Mask length must be in the interval [0, {MAX_REQUEST_MASK_LENGTH}]"
            )

        with self._lock.write():
            # Smallest block that is still large enough
            pool = None
            for i in range(prefix_length, -1, -1):
                if self._pools[i]:
                    pool = self._pools[i].pop(0)
                    break

            if pool is None:
                raise PoolExhausted(
                    f"No pool available to allocate a /{prefix_length} subnet"
                )

            for size in range(i, prefix_length):
                pool, extra = split(pool)
                self._pools[size + 1].append(extra)
                logger.debug("Split off %s", extra)

            self._allocated.add(pool)
            self._signal_update()
            return pool

    def release_pool(self, pool: PoolLike) -> None:
        pool = as_pool(pool)

        with self._lock.write():
            if pool not in self._allocated:
                raise PoolNotAllocated(f"Pool was never allocated: {pool}")

            self._add_pool_no_lock(pool)
            self._allocated.discard(pool)
            self._signal_update()

    # ============ ADDRESSES ============

    def request_address(
        self, pool: PoolLike, address: Optional[AddressLike] = None
    ) -> ipaddress.IPv4Address:
        """
        Lease an address from an allocated pool.

        With `address`, that exact address is leased if the pool contains it
        and nobody holds it. Without, the lowest free host address is leased;
        the network and broadcast addresses are never handed out.
        """
        pool = as_pool(pool)
        ip = as_address(address) if address is not None else None

        with self._lock.write():
            if pool not in self._allocated:
                raise PoolNotAllocated(f"Pool was never allocated: {pool}")

            if ip is not None:
                if pool.contains(ip) and ip not in self._allocated:
                    self._allocated.add(ip)
                    self._signal_update()
                    return ipaddress.IPv4Address(ip)
                raise AddressUnavailable(
                    f"Cannot allocate {format_address(ip)} from pool {pool}"
                )

            if pool.prefix_length >= ADDRESS_BITS:
                raise PoolExhausted(f"Pool is exhausted: {pool}")

            limit = byteops.or_(byteops.not_(pool.mask), pool.network)
            candidate = byteops.copy(pool.network)
            byteops.add(candidate, 1, candidate)  # Skip the network address
            while not byteops.equal(candidate, limit):
                key = bytes(candidate)
                if key not in self._allocated:
                    self._allocated.add(key)
                    self._signal_update()
                    return ipaddress.IPv4Address(key)
                byteops.add(candidate, 1, candidate)

            raise PoolExhausted(f"Pool is exhausted: {pool}")

    def release_address(self, address: AddressLike) -> None:
        ip = as_address(address)

        with self._lock.write():
            if ip not in self._allocated:
                raise AddressNotAllocated(
                    f"IP address was never allocated: {format_address(ip)}"
                )
            self._allocated.discard(ip)
            self._signal_update()

    # ============ SNAPSHOTS ============

    def _free_pools(self):
        for s in self._pools:
            yield from s

    def _leased_pools(self):
        return (key for key in self._allocated if isinstance(key, Pool))

    def dump(self) -> Snapshot:
        with self._lock.read():
            free = [str(pool) for pool in self._free_pools()]
            allocated = [_key_text(key) for key in self._allocated]
        return Snapshot(free=free, allocated=allocated)

    def save(self) -> None:
        """Write the current state to the snapshot store"""
        if self.store is None:
            raise RuntimeError("No snapshot store configured")
        with self._save_lock:
            self.store.write(self.dump())

    def load(self) -> None:
        """Replace the in-memory state with the stored snapshot"""
        if self.store is None:
            raise RuntimeError("No snapshot store configured")
        snapshot = self.store.read()

        try:
            free = [parse_cidr(text) for text in snapshot.free]
            allocated = {_parse_key(text) for text in snapshot.allocated}
        except (IPAMError, TypeError, ValueError) as e:
            raise CorruptSnapshot(f"Snapshot holds an invalid entry: {e}") from e

        with self._lock.write():
            self._reset()
            for pool in free:
                self._pools[pool.prefix_length].append(pool)
            self._allocated = allocated

        logger.debug(
            "Loaded snapshot: %d free pools, %d allocations", len(free), len(allocated)
        )

    def close(self) -> None:
        """Stop background saving, flushing anything not yet saved"""
        if self._autosaver is not None:
            self._autosaver.close()
            self._autosaver = None


def _key_text(key: AllocationKey) -> str:
    if isinstance(key, Pool):
        return str(key)
    return format_address(key)


def _parse_key(text: str) -> AllocationKey:
    if "/" in text:
        return parse_cidr(text)
    return ipaddress.IPv4Address(text).packed
