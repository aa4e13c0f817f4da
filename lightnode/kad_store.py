"""In-memory Kademlia record and provider store."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Set, Tuple

K_VALUE = 20


class StoreError(Exception):
    """Base class for record store errors."""


class ValueTooLarge(StoreError):
    """The record value exceeds the configured size limit."""


class MaxRecords(StoreError):
    """The store already holds the maximum number of records."""


class MaxProvidedKeys(StoreError):
    """The store already tracks the maximum number of provider keys."""


def kbucket_distance(key: bytes, peer: bytes) -> int:
    """XOR distance between the SHA-256 digests of a record key and a peer id."""
    a = int.from_bytes(hashlib.sha256(key).digest(), "big")
    b = int.from_bytes(hashlib.sha256(peer).digest(), "big")
    return a ^ b


@dataclass
class Record:
    """A stored value; ``expires`` is a monotonic timestamp or None."""

    key: bytes
    value: bytes
    publisher: Optional[bytes] = None
    expires: Optional[float] = None

    def is_expired(self, now: float) -> bool:
        """Whether the record has expired at monotonic time ``now``."""
        return self.expires is not None and now >= self.expires


@dataclass(frozen=True)
class ProviderRecord:
    """A record announcing that ``provider`` holds the value for ``key``."""

    key: bytes
    provider: bytes
    expires: Optional[float] = None
    addresses: Tuple[str, ...] = ()


@dataclass
class MemoryStoreConfig:
    """Limits for a :class:`MemoryStore`."""

    max_records: int = 1024
    max_value_bytes: int = 65 * 1024
    max_providers_per_key: int = K_VALUE
    max_provided_keys: int = 1024


class MemoryStore:
    """Records and provider records held in memory."""

    def __init__(self, local_id: bytes, config: Optional[MemoryStoreConfig] = None) -> None:
        self.local_id = local_id
        self.config = config if config is not None else MemoryStoreConfig()
        self._records: Dict[bytes, Record] = {}
        self._providers: Dict[bytes, List[ProviderRecord]] = {}
        self._provided: Set[ProviderRecord] = set()

    def __len__(self) -> int:
        return len(self._records)

    def get(self, key: bytes) -> Optional[Record]:
        """The record stored under ``key``, if any."""
        return self._records.get(key)

    def put(self, record: Record) -> None:
        """Insert or replace a record, enforcing the configured limits."""
        if len(record.value) >= self.config.max_value_bytes:
            raise ValueTooLarge(f"value of {len(record.value)} bytes is too large")
        if record.key not in self._records and len(self._records) >= self.config.max_records:
            raise MaxRecords("maximum number of records reached")
        self._records[record.key] = record

    def remove(self, key: bytes) -> None:
        """Remove the record under ``key`` if present."""
        self._records.pop(key, None)

    def records(self) -> Iterator[Record]:
        """Iterate over the stored records."""
        return iter(list(self._records.values()))

    def retain(self, predicate: Callable[[bytes, Record], bool]) -> None:
        """Keep only the records for which ``predicate(key, record)`` is true."""
        self._records = {k: r for k, r in self._records.items() if predicate(k, r)}

    def shrink(self) -> None:
        """Rebuild the record table to release unused space."""
        self._records = dict(self._records)

    def add_provider(self, record: ProviderRecord) -> None:
        """Add or update a provider record, keeping providers ordered by distance."""
        providers = self._providers.get(record.key)
        if providers is None:
            if self.config.max_provided_keys == len(self._providers):
                raise MaxProvidedKeys("maximum number of provided keys reached")
            providers = self._providers.setdefault(record.key, [])

        existing = next(
            (i for i, p in enumerate(providers) if p.provider == record.provider), None
        )
        if existing is not None:
            providers[existing] = record
            return

        distance = kbucket_distance(record.key, record.provider)
        is_local = record.provider == self.local_id
        index = next(
            (
                i
                for i, p in enumerate(providers)
                if distance < kbucket_distance(record.key, p.provider)
            ),
            None,
        )
        if index is not None:
            if is_local:
                self._provided.add(record)
            providers.insert(index, record)
            if len(providers) > self.config.max_providers_per_key:
                self._provided.discard(providers.pop())
        elif len(providers) < self.config.max_providers_per_key:
            if is_local:
                self._provided.add(record)
            providers.append(record)

    def providers(self, key: bytes) -> List[ProviderRecord]:
        """The provider records for ``key``, nearest first."""
        return list(self._providers.get(key, ()))

    def provided(self) -> Iterator[ProviderRecord]:
        """Iterate over provider records for which the local node is the provider."""
        return iter(list(self._provided))

    def remove_provider(self, key: bytes, provider: bytes) -> None:
        """Remove ``provider`` from the providers of ``key``."""
        providers = self._providers.get(key)
        if providers is None:
            return
        for i, p in enumerate(providers):
            if p.provider == provider:
                self._provided.discard(providers.pop(i))
                break
        if not providers:
            del self._providers[key]