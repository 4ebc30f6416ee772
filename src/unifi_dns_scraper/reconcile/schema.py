"""Schema definitions for the reconciliation engine.

Defines the host entry that flows through the pipeline and the result types
of a cycle and of the record projection.
"""
import ipaddress
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


class InvalidAddress(ValueError):
    """An address string that is not a valid IPv4/IPv6 literal."""

    def __init__(self, address: object, reason: str = ""):
        self.address = address
        message = f"Invalid IP address: {address!r}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class Disposition(str, Enum):
    """Whether an entry makes it to the output, and if not, why."""
    KEPT = "kept"
    REMOVED_MAC_ONLY = "removed_mac_only"
    REMOVED_BLOCKED = "removed_blocked"
    REMOVED_EXCLUSIVE = "removed_exclusive"
    REMOVED_STALE = "removed_stale"


class Source(str, Enum):
    """Where an entry came from. Only used for logging."""
    STATIC = "static"
    CLIENT = "client"
    SWITCH = "switch"
    ACCESS_POINT = "access_point"
    PREVIOUS = "previous"


def parse_address(address: Union[str, IPAddress]) -> IPAddress:
    """Parse an IPv4/IPv6 literal, raising InvalidAddress on failure."""
    if isinstance(address, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return address
    if not isinstance(address, str):
        raise InvalidAddress(address, "not a string")
    try:
        return ipaddress.ip_address(address.strip())
    except ValueError as e:
        raise InvalidAddress(address, str(e)) from e


def address_sort_key(address: IPAddress) -> tuple[int, int]:
    """Numeric ordering: IPv4 sorts before IPv6, then by integer value."""
    return (address.version, int(address))


class Entry:
    """A single host observation being reconciled.

    The address is fixed at construction. Everything else is owned by the
    reconciliation passes: names get pruned, qualified names get generated and
    the disposition records why an entry is left out of the output.
    """

    def __init__(
        self,
        address: IPAddress,
        names: list[str],
        observed_at: datetime,
        reported_last_seen: Optional[datetime] = None,
        exclusive: bool = False,
        source: Source = Source.STATIC,
    ):
        self._address = address
        self.names = list(names)
        self.qualified_names: list[str] = []
        self.observed_at = observed_at
        self.reported_last_seen = reported_last_seen
        self.exclusive = exclusive
        self.source = source
        self.disposition = Disposition.KEPT

    @classmethod
    def create(
        cls,
        address: Union[str, IPAddress],
        names: Union[str, list[str]],
        observed_at: datetime,
        reported_last_seen: Optional[datetime] = None,
        exclusive: bool = False,
        source: Source = Source.STATIC,
    ) -> "Entry":
        """Build an entry from an address string and one or more names.

        Raises:
            InvalidAddress: If the address does not parse
        """
        parsed = parse_address(address)
        if isinstance(names, str):
            names = [names]
        return cls(
            parsed,
            names,
            observed_at,
            reported_last_seen=reported_last_seen,
            exclusive=exclusive,
            source=source,
        )

    @property
    def address(self) -> IPAddress:
        return self._address

    @property
    def is_kept(self) -> bool:
        return self.disposition == Disposition.KEPT

    @property
    def primary_name(self) -> Optional[str]:
        return self.names[0] if self.names else None

    def mark(self, disposition: Disposition) -> bool:
        """Record a removal. Returns False if the entry was already removed.

        A removed entry never goes back to KEPT.
        """
        if disposition == Disposition.KEPT:
            raise ValueError("Entries cannot be marked as kept again")
        if self.disposition != Disposition.KEPT:
            return False
        self.disposition = disposition
        return True

    def copy(self) -> "Entry":
        """Shallow copy with independent name lists."""
        clone = Entry(
            self._address,
            self.names,
            self.observed_at,
            reported_last_seen=self.reported_last_seen,
            exclusive=self.exclusive,
            source=self.source,
        )
        clone.qualified_names = list(self.qualified_names)
        clone.disposition = self.disposition
        return clone

    def to_dict(self) -> dict:
        return {
            "address": str(self._address),
            "names": list(self.names),
            "qualified_names": list(self.qualified_names),
            "observed_at": self.observed_at.isoformat(),
            "reported_last_seen": (
                self.reported_last_seen.isoformat() if self.reported_last_seen else None
            ),
            "exclusive": self.exclusive,
            "source": self.source.value,
            "disposition": self.disposition.value,
        }

    def __repr__(self) -> str:
        return (
            f"Entry({self._address}, names={self.names}, "
            f"disposition={self.disposition.value})"
        )


# --- Cycle results ---

@dataclass
class CycleResult:
    """Outcome of one scrape cycle."""
    entries: list[Entry] = field(default_factory=list)
    success: bool = True
    error: Optional[str] = None

    @property
    def kept(self) -> list[Entry]:
        return [e for e in self.entries if e.is_kept]


# --- Record projection ---

class RecordAction(str, Enum):
    """What to do with a DNS record."""
    INSERT = "insert"
    UPDATE = "update"


@dataclass
class RecordChange:
    """A single record upsert."""
    name: str
    type: str
    content: str
    ttl: int
    action: RecordAction


@dataclass
class RecordPlan:
    """All record changes for one cycle."""
    changes: list[RecordChange] = field(default_factory=list)
    skipped_aliases: list[str] = field(default_factory=list)

    @property
    def inserts(self) -> list[RecordChange]:
        return [c for c in self.changes if c.action == RecordAction.INSERT]

    @property
    def updates(self) -> list[RecordChange]:
        return [c for c in self.changes if c.action == RecordAction.UPDATE]

    @property
    def no_change(self) -> bool:
        return len(self.changes) == 0
