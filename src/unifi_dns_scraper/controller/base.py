"""Base controller abstraction for live inventory sources."""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

logger = logging.getLogger(__name__)


class SourceFetchFailed(Exception):
    """Listing sites, clients or devices from the controller failed."""

    def __init__(self, what: str, reason: object):
        self.what = what
        self.reason = reason
        super().__init__(f"Error getting {what}: {reason}")


@dataclass
class Site:
    """A controller site."""
    name: str
    description: str = ""


@dataclass
class Observation:
    """One raw (address, names) tuple as reported by the controller."""
    address: str
    names: list[str] = field(default_factory=list)
    # Controller's own idea of when it last saw the host
    last_seen: Optional[datetime] = None
    mac: str = ""


@dataclass
class Devices:
    """Infrastructure devices, split by kind."""
    switches: list[Observation] = field(default_factory=list)
    access_points: list[Observation] = field(default_factory=list)
    gateways: list[Observation] = field(default_factory=list)


@dataclass
class Inventory:
    """A complete live snapshot from one controller."""
    sites: list[Site] = field(default_factory=list)
    clients: list[Observation] = field(default_factory=list)
    devices: Devices = field(default_factory=Devices)


class ControllerClient(ABC):
    """Abstract base class for inventory sources.

    All three listing calls must succeed for a cycle to use live data.
    """

    @abstractmethod
    async def get_sites(self) -> list[Site]:
        """List the controller's sites."""
        pass

    @abstractmethod
    async def get_clients(self, sites: list[Site]) -> list[Observation]:
        """List connected clients across sites."""
        pass

    @abstractmethod
    async def get_devices(self, sites: list[Site]) -> Devices:
        """List infrastructure devices across sites."""
        pass

    async def close(self) -> None:
        """Release any open connections."""
        pass

    async def fetch_inventory(self) -> Inventory:
        """Fetch sites, then clients and devices for those sites.

        Raises:
            SourceFetchFailed: If any of the three calls fails
        """
        sites = await self.get_sites()
        clients = await self.get_clients(sites)
        devices = await self.get_devices(sites)

        logger.info(f"{len(sites)} Unifi Sites Found")
        logger.info(f"{len(clients)} Clients connected")
        logger.info(f"{len(devices.switches)} Unifi Switches Found")
        logger.info(f"{len(devices.gateways)} Unifi Gateways Found")
        logger.info(f"{len(devices.access_points)} Unifi Wireless APs Found")

        return Inventory(sites=sites, clients=clients, devices=devices)

    # Context manager support
    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False
