"""Reconciliation engine - orchestrates one pass over the host inventory.

Provides a single entry point for:
1. Building entries from static config and the live inventory, plus the
   previous result for addresses not seen this cycle
2. Running the MAC policy, then qualifying names
3. Applying block list and exclusivity policies
4. Resolving duplicate addresses and stale names
5. Ageing out entries nobody has seen for too long
6. Sorting by address
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from ..controller.base import ControllerClient, Observation, SourceFetchFailed
from ..utils.logging_config import timed_section_sync
from .filters import (
    PassReport,
    apply_block_list,
    apply_exclusivity,
    apply_mac_policy,
    apply_max_age,
    resolve_duplicate_addresses,
    resolve_stale_names,
)
from .qualifier import qualify
from .schema import CycleResult, Entry, InvalidAddress, Source, address_sort_key

if TYPE_CHECKING:
    from ..config.settings import ProcessingSettings, StaticHost


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Reconciler:
    """
    Turns raw observations into a deduplicated, policy-filtered host list.

    Usage:
        reconciler = Reconciler(config.processing)
        entries = reconciler.reconcile(
            config.processing.additional,
            inventory.clients,
            inventory.devices.switches,
            inventory.devices.access_points,
            previous,
        )
    """

    def __init__(
        self,
        settings: "ProcessingSettings",
        logger: Optional[logging.Logger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the reconciler.

        Args:
            settings: Domains, MAC handling, block rules and max age
            logger: Where pass counts and dropped tuples are reported
            clock: Returns the current time; defaults to UTC wall clock
        """
        self.settings = settings
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock or utcnow

    @property
    def max_age(self) -> Optional[timedelta]:
        if not self.settings.max_age:
            return None
        return timedelta(seconds=self.settings.max_age)

    def reconcile(
        self,
        static_hosts: Iterable["StaticHost"],
        clients: Iterable[Observation],
        switches: Iterable[Observation],
        access_points: Iterable[Observation],
        previous: Optional[Iterable[Entry]] = None,
    ) -> list[Entry]:
        """
        Run the full pipeline and return entries sorted by address.

        Removed entries are included with their disposition set;
        only the output projection filters them out.

        Args:
            static_hosts: Hosts from configuration
            clients: Live clients
            switches: Live switches
            access_points: Live wireless access points
            previous: Result of the previous cycle, if any

        Returns:
            Entries with unique addresses in ascending address order
        """
        now = self.clock()

        # Step 1: Build entries, static first
        entries = self._build_static(static_hosts, now)
        entries += self._build_live(clients, Source.CLIENT, now)
        entries += self._build_live(switches, Source.SWITCH, now)
        entries += self._build_live(access_points, Source.ACCESS_POINT, now)
        self.logger.info(f"Built {len(entries)} candidate hosts")

        # Merge the previous result; carried entries face the current
        # rules and domains like fresh ones
        entries += self._carry_forward(previous, entries)

        # Step 2: MAC policy runs before names are qualified
        if not self.settings.keep_macs:
            self.logger.warning("Skipping MAC addresses")
        self._report(apply_mac_policy(entries, self.settings.keep_macs))

        # Step 3: Qualify
        for entry in entries:
            qualify(entry, self.settings.domains)

        # Step 4: Block list. Runs before duplicate resolution so that a
        # blocked address cannot hide the correct one.
        report = apply_block_list(entries, self.settings.blocked)
        for entry in report.removed:
            self.logger.warning(
                f"host name={entry.primary_name} ip={entry.address} is blocked "
                f"from appearing in output by configuration"
            )
        self._report(report)

        # Step 5: Exclusivity
        self._report(apply_exclusivity(entries, self.settings.domains))

        # Step 6: Deduplicate
        entries, report = resolve_duplicate_addresses(entries)
        self._report(report)
        entries, report = resolve_stale_names(entries)
        self._report(report)

        # Step 7: Age out
        if self.max_age:
            self._report(apply_max_age(entries, self.max_age, now))

        # Step 8: Sort
        entries.sort(key=lambda e: address_sort_key(e.address))

        kept = sum(1 for e in entries if e.is_kept)
        self.logger.info(f"Reconciled {len(entries)} hosts, {kept} kept")
        return entries

    def _build_static(self, static_hosts: Iterable["StaticHost"], now: datetime) -> list[Entry]:
        entries = []
        for host in static_hosts:
            try:
                entries.append(Entry.create(
                    host.ip,
                    host.names,
                    now,
                    exclusive=host.exclusive,
                    source=Source.STATIC,
                ))
            except InvalidAddress as e:
                self.logger.warning(f"unable to parse IP address: {host.ip} ({e})")
        return entries

    def _build_live(self, observations: Iterable[Observation], source: Source, now: datetime) -> list[Entry]:
        entries = []
        for i, observation in enumerate(observations, start=1):
            names = [n.strip() for n in observation.names if n and n.strip()]
            if not names:
                self.logger.warning(
                    f"Dropping {source.value} record {i} without a name: "
                    f"ip={observation.address} mac={observation.mac}"
                )
                continue
            try:
                entries.append(Entry.create(
                    observation.address,
                    names,
                    now,
                    reported_last_seen=observation.last_seen,
                    source=source,
                ))
            except InvalidAddress:
                self.logger.warning(
                    f"Error Parsing Record: {source.value} {i}, name={names[0]}, "
                    f"IP={observation.address}, mac={observation.mac}"
                )
        return entries

    def _carry_forward(self, previous: Optional[Iterable[Entry]], current: list[Entry]) -> list[Entry]:
        """Kept entries from last cycle whose address was not seen this cycle."""
        if not previous:
            return []
        present = {e.address for e in current}
        carried = []
        for entry in previous:
            if entry.is_kept and entry.address not in present:
                clone = entry.copy()
                clone.source = Source.PREVIOUS
                carried.append(clone)
                present.add(entry.address)
        self.logger.info(f"Carried {len(carried)} hosts forward from the previous cycle")
        return carried

    def _report(self, report: PassReport) -> None:
        self.logger.info(report.summary())
        for entry in report.removed:
            self.logger.debug(
                f"{report.name}: removed {entry.address} names={entry.names} "
                f"({entry.disposition.value})"
            )
        for entry in report.dropped:
            self.logger.debug(f"{report.name}: dropped {entry.address} names={entry.names}")


async def scrape(
    controller: ControllerClient,
    reconciler: Reconciler,
    static_hosts: Iterable["StaticHost"],
    previous: Optional[list[Entry]] = None,
) -> CycleResult:
    """
    Fetch the live inventory and reconcile it.

    If any of the controller calls fails, the previous result is returned
    untouched; partial live data never reaches the output.
    """
    previous = previous if previous is not None else []
    logger = reconciler.logger
    logger.info("Starting new host file generation")
    logger.info(f"{len(previous)} existing hosts in the hostmap")

    try:
        inventory = await controller.fetch_inventory()
    except SourceFetchFailed as e:
        logger.error(str(e))
        logger.warning("Not updating list of hosts this round - will try again later")
        return CycleResult(entries=previous, success=False, error=str(e))

    with timed_section_sync("reconcile", clients=len(inventory.clients)):
        entries = reconciler.reconcile(
            static_hosts,
            inventory.clients,
            inventory.devices.switches,
            inventory.devices.access_points,
            previous,
        )
    return CycleResult(entries=entries)
