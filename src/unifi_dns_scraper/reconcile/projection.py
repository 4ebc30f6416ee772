"""Output projection - renders reconciled entries for the sinks.

Two views over the same entries, both limited to kept entries:

- the hosts file text
- a plan of A and CNAME record upserts for the record store
"""
import logging
from typing import Iterable, Mapping, Optional

from .schema import Entry, RecordAction, RecordChange, RecordPlan, address_sort_key

logger = logging.getLogger(__name__)

HOSTS_HEADER = (
    "# This file created by unifi-dns-scraper\n"
    "# Do not manually edit\n\n"
)
DEFAULT_TTL = 3600


def kept_entries(entries: Iterable[Entry]) -> list[Entry]:
    """Kept entries in address order."""
    kept = [e for e in entries if e.is_kept]
    kept.sort(key=lambda e: address_sort_key(e.address))
    return kept


def render_hosts(entries: Iterable[Entry]) -> str:
    """Render the hosts file: header, then ``address fqdn fqdn ...`` lines."""
    lines = [HOSTS_HEADER]
    for entry in kept_entries(entries):
        if not entry.qualified_names:
            logger.debug(f"Skipping {entry.address}: no qualified names")
            continue
        lines.append(f"{entry.address} {' '.join(entry.qualified_names)}\n")
    return "".join(lines)


def name_map(entries: Iterable[Entry]) -> dict[str, str]:
    """Qualified name -> address string, first entry in address order wins."""
    names: dict[str, str] = {}
    for entry in kept_entries(entries):
        for fqdn in entry.qualified_names:
            names.setdefault(fqdn.rstrip("."), str(entry.address))
    return names


def plan_records(
    entries: Iterable[Entry],
    existing_a: Mapping[str, str],
    existing_cname: Mapping[str, str],
    aliases: Optional[Iterable] = None,
    ttl: int = DEFAULT_TTL,
) -> RecordPlan:
    """
    Work out which records to insert or update.

    Args:
        entries: Reconciled entries (removed ones are ignored)
        existing_a: Current A records, name -> address
        existing_cname: Current CNAME records, name -> target
        aliases: Rules with ``cname`` and ``hostname`` attributes
        ttl: TTL for new records

    Returns:
        RecordPlan with the changes and any aliases that were skipped
    """
    plan = RecordPlan()
    names = name_map(entries)

    for fqdn, address in names.items():
        current = existing_a.get(fqdn)
        if current is None:
            plan.changes.append(RecordChange(fqdn, "A", address, ttl, RecordAction.INSERT))
        elif current != address:
            plan.changes.append(RecordChange(fqdn, "A", address, ttl, RecordAction.UPDATE))

    for alias in aliases or []:
        target = alias.hostname.lower().rstrip(".")
        cname = alias.cname.lower().rstrip(".")
        if target not in names:
            logger.warning(
                f"CNAME target '{alias.hostname}' for '{alias.cname}' not found in hosts, "
                f"skipping database entry"
            )
            plan.skipped_aliases.append(alias.cname)
            continue
        current = existing_cname.get(cname)
        if current is None:
            plan.changes.append(RecordChange(cname, "CNAME", target, ttl, RecordAction.INSERT))
        elif current != target:
            plan.changes.append(RecordChange(cname, "CNAME", target, ttl, RecordAction.UPDATE))

    return plan
