"""Reconciliation engine - turns raw host observations into a clean name map.

Usage:
    from unifi_dns_scraper.reconcile import Reconciler, render_hosts

    reconciler = Reconciler(config.processing)
    entries = reconciler.reconcile(static, clients, switches, aps, previous)
    text = render_hosts(entries)
"""

from .schema import (
    Entry,
    Disposition,
    Source,
    InvalidAddress,
    CycleResult,
    RecordAction,
    RecordChange,
    RecordPlan,
    parse_address,
    address_sort_key,
)
from .qualifier import qualify, qualified_names
from .filters import (
    is_mac,
    apply_mac_policy,
    apply_block_list,
    apply_exclusivity,
    resolve_duplicate_addresses,
    resolve_stale_names,
    apply_max_age,
)
from .engine import Reconciler, scrape
from .projection import render_hosts, plan_records, kept_entries, HOSTS_HEADER

__all__ = [
    # Main engine
    "Reconciler",
    "scrape",
    # Schema
    "Entry",
    "Disposition",
    "Source",
    "InvalidAddress",
    "CycleResult",
    "RecordAction",
    "RecordChange",
    "RecordPlan",
    "parse_address",
    "address_sort_key",
    # Qualifier
    "qualify",
    "qualified_names",
    # Filters
    "is_mac",
    "apply_mac_policy",
    "apply_block_list",
    "apply_exclusivity",
    "resolve_duplicate_addresses",
    "resolve_stale_names",
    "apply_max_age",
    # Projection
    "render_hosts",
    "plan_records",
    "kept_entries",
    "HOSTS_HEADER",
]
