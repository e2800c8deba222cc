"""DIMM records and the hashed registry that owns them."""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Iterator

from dimmdb.core.bucket import BucketState

if TYPE_CHECKING:
    from dimmdb.core.dmi import MemoryDevice


# Number of hash chains
SHASH = 17

FNV32_OFFSET = 2166136261
FNV32_PRIME = 0x01000193


def dimm_hash(socket_id: int, channel: int, slot: int) -> int:
    """
    Bucket index for a DIMM.

    FNV-1a over the low byte of the socket, its second byte, then the low
    bytes of slot and channel. Good for up to 16k sockets and 256
    channels/slots. -1 hashes as 0xff.
    """
    h = FNV32_OFFSET
    for octet in (socket_id, socket_id >> 8, slot, channel):
        h = ((h ^ (octet & 0xFF)) * FNV32_PRIME) & 0xFFFFFFFF
    return h % SHASH


@dataclass(frozen=True, order=True)
class DimmKey:
    """Identity of a DIMM. channel/slot of -1 mean unspecified."""

    socket_id: int
    channel: int = -1
    slot: int = -1


@dataclass
class ErrorCounter:
    """Running total and bucket state for one error class."""

    state: BucketState
    total_count: int = 0


@dataclass
class DimmRecord:
    """Everything known about one DIMM."""

    key: DimmKey
    ce: ErrorCounter
    uc: ErrorCounter
    name: str | None = None
    location: str | None = None
    memdev: "MemoryDevice | None" = None

    @property
    def socket_id(self) -> int:
        return self.key.socket_id

    @property
    def channel(self) -> int:
        return self.key.channel

    @property
    def slot(self) -> int:
        return self.key.slot


class DimmRegistry:
    """
    Fixed-size chained hash table of DimmRecords.

    Records are created on first lookup and never removed.
    """

    def __init__(self, state_factory: Callable[[], BucketState] = BucketState):
        self._state_factory = state_factory
        self._buckets: list[list[DimmRecord]] = [[] for _ in range(SHASH)]
        self._count = 0

    def get_or_create(self, socket_id: int, channel: int, slot: int) -> DimmRecord:
        """
        Look up a DIMM, creating it on a miss.

        Args:
            socket_id: CPU socket
            channel: Memory channel, -1 if unknown
            slot: DIMM slot on the channel, -1 if unknown

        Returns:
            The single record for this (socket, channel, slot)
        """
        key = DimmKey(socket_id, channel, slot)
        chain = self._buckets[dimm_hash(socket_id, channel, slot)]
        for record in chain:
            if record.key == key:
                return record

        record = DimmRecord(
            key=key,
            ce=ErrorCounter(state=self._state_factory()),
            uc=ErrorCounter(state=self._state_factory()),
        )
        chain.insert(0, record)
        self._count += 1
        return record

    def count(self) -> int:
        return self._count

    def for_each(self, visitor: Callable[[DimmRecord], Any]) -> None:
        for record in self:
            visitor(record)

    def __iter__(self) -> Iterator[DimmRecord]:
        for chain in self._buckets:
            yield from chain

    def __len__(self) -> int:
        return self._count
