import enum
from dataclasses import dataclass
from typing import FrozenSet
from typing import Optional


class EventKind(enum.Enum):
    """The kmem tracepoints understood by the aggregator.

    The value of every member is the tracepoint name as it appears in the
    ``kmem`` event system of the kernel tracer.
    """

    KMALLOC = "kmalloc"
    KMALLOC_NODE = "kmalloc_node"
    KFREE = "kfree"
    KMEM_CACHE_ALLOC = "kmem_cache_alloc"
    KMEM_CACHE_ALLOC_NODE = "kmem_cache_alloc_node"
    KMEM_CACHE_FREE = "kmem_cache_free"

    @classmethod
    def from_name(cls, name: str) -> Optional["EventKind"]:
        try:
            return cls(name)
        except ValueError:
            return None

    @property
    def is_allocation(self) -> bool:
        return self in ALLOCATION_KINDS

    @property
    def is_deallocation(self) -> bool:
        return self in FREE_KINDS


ALLOCATION_KINDS: FrozenSet[EventKind] = frozenset(
    {
        EventKind.KMALLOC,
        EventKind.KMALLOC_NODE,
        EventKind.KMEM_CACHE_ALLOC,
        EventKind.KMEM_CACHE_ALLOC_NODE,
    }
)
FREE_KINDS: FrozenSet[EventKind] = frozenset(
    {EventKind.KFREE, EventKind.KMEM_CACHE_FREE}
)

KMALLOC_KINDS: FrozenSet[EventKind] = frozenset(
    {EventKind.KMALLOC, EventKind.KMALLOC_NODE, EventKind.KFREE}
)
CACHE_KINDS: FrozenSet[EventKind] = frozenset(
    {
        EventKind.KMEM_CACHE_ALLOC,
        EventKind.KMEM_CACHE_ALLOC_NODE,
        EventKind.KMEM_CACHE_FREE,
    }
)
ALL_KINDS: FrozenSet[EventKind] = frozenset(EventKind)


@dataclass(frozen=True)
class KmemEvent:
    """A decoded kmem trace event.

    ``kind`` is the tracepoint name. Free events only carry ``ptr``; the
    remaining fields are left unset for them.
    """

    kind: str
    ptr: int
    call_site: Optional[str] = None
    bytes_req: int = 0
    bytes_alloc: int = 0

    def __str__(self) -> str:
        if self.call_site is None:
            return f"{self.kind} ptr={self.ptr:#x}"
        return (
            f"{self.kind} call_site={self.call_site} ptr={self.ptr:#x}"
            f" bytes_req={self.bytes_req} bytes_alloc={self.bytes_alloc}"
        )
