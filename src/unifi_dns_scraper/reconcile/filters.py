"""Conflict and policy passes over the candidate entries.

Each pass takes the full candidate list, including entries an earlier pass
already removed, so the counts it reports are accurate. Annotating passes set
their own disposition and leave the list intact; the duplicate and stale-name
passes drop losing entries from the list altogether.

The order the pipeline runs them in matters:

1. MAC-name policy
2. Block list
3. Static-entry exclusivity
4. Duplicate addresses
5. Stale names
6. Maximum age
"""
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Optional

from .qualifier import qualify
from .schema import Disposition, Entry, IPAddress

MAC_PATTERN = re.compile(r"^[0-9a-f]{2}(:[0-9a-f]{2}){5}$", re.IGNORECASE)


def is_mac(name: str) -> bool:
    """True for names like 00:1a:2b:3c:4d:5e."""
    return bool(MAC_PATTERN.match(name.strip()))


@dataclass
class PassReport:
    """What a single pass did, for logging."""
    name: str
    examined: int = 0
    removed: list[Entry] = field(default_factory=list)
    dropped: list[Entry] = field(default_factory=list)
    rewritten: int = 0

    def summary(self) -> str:
        parts = [f"{self.name}: examined={self.examined}"]
        if self.removed:
            parts.append(f"removed={len(self.removed)}")
        if self.dropped:
            parts.append(f"dropped={len(self.dropped)}")
        if self.rewritten:
            parts.append(f"rewritten={self.rewritten}")
        return " ".join(parts)


def apply_mac_policy(entries: list[Entry], keep_macs: bool) -> PassReport:
    """Strip or rewrite names that are really MAC addresses.

    With keep_macs off, MAC names are dropped and an entry left with no
    names is marked REMOVED_MAC_ONLY, keeping its original names so the
    reason stays visible. With keep_macs on, colons become hyphens.
    """
    report = PassReport("mac_policy", examined=len(entries))
    for entry in entries:
        if keep_macs:
            rewritten = [n.replace(":", "-") if is_mac(n) else n for n in entry.names]
            if rewritten != entry.names:
                report.rewritten += 1
                entry.names = rewritten
            continue

        remaining = [n for n in entry.names if not is_mac(n)]
        if len(remaining) == len(entry.names):
            continue
        if remaining:
            report.rewritten += 1
            entry.names = remaining
        elif entry.mark(Disposition.REMOVED_MAC_ONLY):
            report.removed.append(entry)
    return report


def apply_block_list(entries: list[Entry], rules: Iterable) -> PassReport:
    """Mark entries matching a block rule as REMOVED_BLOCKED.

    Rules are tried in order and the first match wins.
    """
    rules = list(rules)
    report = PassReport("block_list", examined=len(entries))
    for entry in entries:
        for rule in rules:
            if rule.matches(entry.names, entry.address):
                if entry.mark(Disposition.REMOVED_BLOCKED):
                    report.removed.append(entry)
                break
    return report


def exclusive_owners(entries: Iterable[Entry]) -> dict[str, IPAddress]:
    """Map each exclusive name to the address that owns it.

    The first exclusive entry to claim a name keeps it.
    """
    owners: dict[str, IPAddress] = {}
    for entry in entries:
        if not entry.exclusive:
            continue
        for name in entry.names:
            owners.setdefault(name.strip().lower(), entry.address)
    return owners


def apply_exclusivity(entries: list[Entry], domains: list[str]) -> PassReport:
    """Remove exclusive names from every entry at a different address.

    An entry that loses all of its names is marked REMOVED_EXCLUSIVE and
    gets its original names back for logging.
    """
    report = PassReport("exclusivity", examined=len(entries))
    owners = exclusive_owners(entries)
    if not owners:
        return report

    for entry in entries:
        original = entry.names
        remaining = [
            n for n in original
            if owners.get(n.strip().lower(), entry.address) == entry.address
        ]
        if len(remaining) == len(original):
            continue
        if remaining:
            report.rewritten += 1
            entry.names = remaining
            qualify(entry, domains)
        elif entry.mark(Disposition.REMOVED_EXCLUSIVE):
            report.removed.append(entry)
    return report


def _replaces(candidate: Entry, current: Entry) -> bool:
    """Newer wins; on a tie a kept entry beats a removed one."""
    if candidate.observed_at != current.observed_at:
        return candidate.observed_at > current.observed_at
    return candidate.is_kept and not current.is_kept


def resolve_duplicate_addresses(entries: list[Entry]) -> tuple[list[Entry], PassReport]:
    """Keep only the most recently observed entry for each address.

    On equal timestamps a kept entry beats a removed one, so a blocked or
    MAC-only host cannot push a valid host at the same address out of the
    output. Remaining ties go to the entry seen first. Losers are dropped,
    not marked.
    """
    report = PassReport("duplicate_addresses", examined=len(entries))
    winners: dict[IPAddress, Entry] = {}
    for entry in entries:
        current = winners.get(entry.address)
        if current is None:
            winners[entry.address] = entry
        elif _replaces(entry, current):
            report.dropped.append(current)
            winners[entry.address] = entry
        else:
            report.dropped.append(entry)
    return list(winners.values()), report


def resolve_stale_names(entries: list[Entry]) -> tuple[list[Entry], PassReport]:
    """Keep only the most recently observed kept entry for each primary name.

    Only kept entries compete; a removed entry never hides the name of a
    kept one. Ties go to the entry seen first. Losers are dropped.
    """
    report = PassReport("stale_names", examined=len(entries))
    winners: dict[str, Entry] = {}
    for entry in entries:
        if not entry.is_kept or not entry.primary_name:
            continue
        key = entry.primary_name.strip().lower()
        current = winners.get(key)
        if current is None:
            winners[key] = entry
        elif entry.observed_at > current.observed_at:
            report.dropped.append(current)
            winners[key] = entry
        else:
            report.dropped.append(entry)

    losers = {id(e) for e in report.dropped}
    return [e for e in entries if id(e) not in losers], report


def apply_max_age(entries: list[Entry], max_age: Optional[timedelta], now: datetime) -> PassReport:
    """Mark entries not observed within max_age as REMOVED_STALE.

    A missing or zero max_age disables the pass.
    """
    report = PassReport("max_age", examined=len(entries))
    if not max_age:
        return report
    for entry in entries:
        if now - entry.observed_at > max_age:
            if entry.mark(Disposition.REMOVED_STALE):
                report.removed.append(entry)
    return report
