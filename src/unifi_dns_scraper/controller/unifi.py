"""UniFi Network controller client.

Talks to the controller's private REST API over HTTPS:

- Classic controllers (Cloud Key gen1, self-hosted) log in at ``/api/login``
- UniFi OS consoles (UDM, Cloud Key gen2+) log in at ``/api/auth/login`` and
  serve the network API under ``/proxy/network``

UniFi OS answers ``GET /`` with 200, a classic controller redirects, which is
how the two are told apart.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from .base import ControllerClient, Devices, Observation, Site, SourceFetchFailed
from ..utils.connection import with_retry
from ..utils.logging_config import timed

logger = logging.getLogger(__name__)

UNIFI_OS_PREFIX = "/proxy/network"

SWITCH_TYPES = {"usw"}
ACCESS_POINT_TYPES = {"uap"}
GATEWAY_TYPES = {"ugw", "udm", "uxg"}


def parse_last_seen(value: Any) -> Optional[datetime]:
    """Convert the controller's epoch seconds into an aware datetime."""
    if value in (None, ""):
        return None
    try:
        return datetime.fromtimestamp(float(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def observation_from_record(record: dict) -> Optional[Observation]:
    """Build an observation from a client or device record.

    Name falls back to hostname, then MAC. Records without an IP are skipped.
    """
    ip = str(record.get("ip") or "").strip()
    if not ip:
        return None
    mac = str(record.get("mac") or "")
    name = record.get("name") or record.get("hostname") or mac
    if not name:
        return None
    return Observation(
        address=ip,
        names=[str(name).strip()],
        last_seen=parse_last_seen(record.get("last_seen")),
        mac=mac,
    )


class UnifiController(ControllerClient):
    """UniFi controller handler using the session-cookie REST API."""

    def __init__(self, settings, http: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._base_url = settings.host.rstrip("/")
        self._http = http
        self._owns_http = http is None
        self._api_prefix = ""
        self._logged_in = False

    def _get_http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self._base_url,
                verify=self.settings.verify_ssl,
                timeout=self.settings.timeout,
            )
        return self._http

    @with_retry(max_attempts=3, min_wait=1, max_wait=10)
    async def login(self) -> None:
        """Log in and remember the session cookie."""
        http = self._get_http()
        logger.info(f"Connecting to Unifi controller at {self._base_url}")

        root = await http.get("/")
        unifi_os = root.status_code == 200
        login_path = "/api/auth/login" if unifi_os else "/api/login"

        response = await http.post(
            login_path,
            json={"username": self.settings.username, "password": self.settings.password},
        )
        response.raise_for_status()

        if unifi_os:
            self._api_prefix = UNIFI_OS_PREFIX
            csrf = response.headers.get("x-csrf-token")
            if csrf:
                http.headers["X-CSRF-Token"] = csrf
        else:
            self._api_prefix = ""

        self._logged_in = True
        logger.info(f"Logged in to {self._base_url} (unifi_os={unifi_os})")

    @with_retry(max_attempts=3, min_wait=1, max_wait=10)
    async def _get_data(self, path: str) -> list[dict]:
        """GET an API path and return its ``data`` list."""
        http = self._get_http()
        response = await http.get(self._api_prefix + path)
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError(f"Unexpected payload for {path}: {type(payload).__name__}")

        meta = payload.get("meta")
        if not isinstance(meta, dict):
            meta = {}
        if meta.get("rc", "ok") != "ok":
            raise ValueError(f"Controller returned rc={meta.get('rc')}: {meta.get('msg', '')}")

        data = payload.get("data", [])
        if not isinstance(data, list):
            raise ValueError(f"Unexpected payload for {path}: data is {type(data).__name__}")
        if not all(isinstance(record, dict) for record in data):
            raise ValueError(f"Unexpected payload for {path}: records must be objects")
        return data

    async def _fetch(self, what: str, path: str) -> list[dict]:
        try:
            if not self._logged_in:
                await self.login()
            return await self._get_data(path)
        except (httpx.HTTPError, ValueError) as e:
            # Session may have expired, log in again next time
            self._logged_in = False
            raise SourceFetchFailed(what, e) from e

    @timed("get_sites")
    async def get_sites(self) -> list[Site]:
        records = await self._fetch("sites", "/api/self/sites")
        return [
            Site(name=str(r["name"]), description=str(r.get("desc", "")))
            for r in records
            if r.get("name")
        ]

    @timed("get_clients")
    async def get_clients(self, sites: list[Site]) -> list[Observation]:
        clients = []
        for site in sites:
            records = await self._fetch("clients", f"/api/s/{site.name}/stat/sta")
            for record in records:
                observation = observation_from_record(record)
                if observation is None:
                    logger.debug(f"Skipping client without ip/name: mac={record.get('mac')}")
                    continue
                clients.append(observation)
        return clients

    @timed("get_devices")
    async def get_devices(self, sites: list[Site]) -> Devices:
        devices = Devices()
        for site in sites:
            records = await self._fetch("devices", f"/api/s/{site.name}/stat/device")
            for record in records:
                device_type = str(record.get("type", "")).lower()
                observation = observation_from_record(record)
                if observation is None:
                    logger.debug(f"Skipping {device_type} device without ip/name: mac={record.get('mac')}")
                    continue
                if device_type in SWITCH_TYPES:
                    devices.switches.append(observation)
                elif device_type in ACCESS_POINT_TYPES:
                    devices.access_points.append(observation)
                elif device_type in GATEWAY_TYPES:
                    devices.gateways.append(observation)
                else:
                    logger.debug(f"Ignoring device {observation.names[0]} of type {device_type!r}")
        return devices

    async def close(self) -> None:
        """Close the HTTP session if we opened it."""
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None
        self._logged_in = False
