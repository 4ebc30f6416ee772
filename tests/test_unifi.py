"""Tests for UniFi controller client."""
import json
from datetime import datetime, timezone

import httpx
import pytest
from unifi_dns_scraper.config.settings import ControllerSettings
from unifi_dns_scraper.controller import (
    SourceFetchFailed,
    UnifiController,
)
from unifi_dns_scraper.controller.unifi import observation_from_record, parse_last_seen

BASE_URL = "https://unifi.example.com"

SITES = [{"name": "default", "desc": "Default"}]
CLIENTS = [
    {"mac": "aa:bb:cc:00:00:01", "ip": "192.168.1.100", "name": "laptop", "last_seen": 1672574400},
    {"mac": "aa:bb:cc:00:00:02", "ip": "192.168.1.101", "hostname": "phone"},
    {"mac": "aa:bb:cc:00:00:03", "ip": "192.168.1.102"},
    {"mac": "aa:bb:cc:00:00:04", "name": "offline"},
]
DEVICES = [
    {"mac": "f0:9f:c2:00:00:01", "ip": "192.168.1.2", "name": "core-switch", "type": "usw"},
    {"mac": "f0:9f:c2:00:00:02", "ip": "192.168.1.3", "name": "lobby-ap", "type": "uap"},
    {"mac": "f0:9f:c2:00:00:03", "ip": "192.168.1.1", "name": "gateway", "type": "udm"},
    {"mac": "f0:9f:c2:00:00:04", "ip": "192.168.1.4", "name": "camera", "type": "uvc"},
]


def ok(data):
    return httpx.Response(200, json={"meta": {"rc": "ok"}, "data": data})


class FakeUnifi:
    """Request handler that imitates a controller."""

    def __init__(self, unifi_os: bool = False):
        self.unifi_os = unifi_os
        self.prefix = "/proxy/network" if unifi_os else ""
        self.requests: list[httpx.Request] = []
        self.fail_paths: dict[str, httpx.Response] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path in self.fail_paths:
            return self.fail_paths[path]
        if path == "/":
            return httpx.Response(200 if self.unifi_os else 302)
        if path in ("/api/auth/login", "/api/login"):
            expected = "/api/auth/login" if self.unifi_os else "/api/login"
            body = json.loads(request.content)
            if path != expected or body != {"username": "admin", "password": "secret"}:
                return httpx.Response(401)
            headers = {"x-csrf-token": "token123"} if self.unifi_os else {}
            return httpx.Response(200, json={}, headers=headers)
        routes = {
            f"{self.prefix}/api/self/sites": SITES,
            f"{self.prefix}/api/s/default/stat/sta": CLIENTS,
            f"{self.prefix}/api/s/default/stat/device": DEVICES,
        }
        if path in routes:
            return ok(routes[path])
        return httpx.Response(404)


def make_controller(fake: FakeUnifi, password: str = "secret") -> UnifiController:
    settings = ControllerSettings(host=BASE_URL, username="admin", password=password)
    http = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(fake))
    return UnifiController(settings, http=http)


class TestRecordParsing:
    """Tests for turning API records into observations."""

    def test_name_preferred(self):
        """name beats hostname."""
        obs = observation_from_record({"ip": "10.0.0.1", "name": "a", "hostname": "b", "mac": "m"})
        assert obs.names == ["a"]

    def test_hostname_fallback(self):
        """hostname is used when name is missing."""
        obs = observation_from_record({"ip": "10.0.0.1", "hostname": "b"})
        assert obs.names == ["b"]

    def test_mac_fallback(self):
        """The MAC is the last resort name."""
        obs = observation_from_record({"ip": "10.0.0.1", "mac": "aa:bb:cc:dd:ee:ff"})
        assert obs.names == ["aa:bb:cc:dd:ee:ff"]

    def test_no_ip(self):
        """Records without an address are skipped."""
        assert observation_from_record({"name": "offline"}) is None

    def test_last_seen(self):
        """Epoch seconds become an aware datetime."""
        assert parse_last_seen(1672574400) == datetime(2023, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert parse_last_seen(None) is None
        assert parse_last_seen("soon") is None


class TestUnifiController:
    """Tests for UnifiController against a mocked controller."""

    @pytest.mark.asyncio
    async def test_classic_inventory(self):
        """Classic controllers log in at /api/login."""
        fake = FakeUnifi()
        async with make_controller(fake) as controller:
            inventory = await controller.fetch_inventory()

        assert [s.name for s in inventory.sites] == ["default"]
        assert [(c.address, c.names) for c in inventory.clients] == [
            ("192.168.1.100", ["laptop"]),
            ("192.168.1.101", ["phone"]),
            ("192.168.1.102", ["aa:bb:cc:00:00:03"]),
        ]
        assert inventory.clients[0].last_seen == datetime(2023, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert inventory.clients[0].mac == "aa:bb:cc:00:00:01"
        assert any(r.url.path == "/api/login" for r in fake.requests)

    @pytest.mark.asyncio
    async def test_device_split(self):
        """Devices are split into switches, APs and gateways."""
        async with make_controller(FakeUnifi()) as controller:
            devices = await controller.get_devices(await controller.get_sites())
        assert [d.names for d in devices.switches] == [["core-switch"]]
        assert [d.names for d in devices.access_points] == [["lobby-ap"]]
        assert [d.names for d in devices.gateways] == [["gateway"]]

    @pytest.mark.asyncio
    async def test_unifi_os(self):
        """UniFi OS consoles use /api/auth/login and the network proxy prefix."""
        fake = FakeUnifi(unifi_os=True)
        async with make_controller(fake) as controller:
            sites = await controller.get_sites()
        assert [s.name for s in sites] == ["default"]
        assert fake.requests[-1].url.path == "/proxy/network/api/self/sites"
        assert fake.requests[-1].headers["X-CSRF-Token"] == "token123"

    @pytest.mark.asyncio
    async def test_login_once(self):
        """The session is reused across calls."""
        fake = FakeUnifi()
        async with make_controller(fake) as controller:
            sites = await controller.get_sites()
            await controller.get_clients(sites)
            await controller.get_devices(sites)
        logins = [r for r in fake.requests if r.url.path == "/api/login"]
        assert len(logins) == 1

    @pytest.mark.asyncio
    async def test_bad_credentials(self):
        """A rejected login fails the fetch."""
        async with make_controller(FakeUnifi(), password="wrong") as controller:
            with pytest.raises(SourceFetchFailed) as excinfo:
                await controller.get_sites()
        assert excinfo.value.what == "sites"
        assert str(excinfo.value).startswith("Error getting sites:")

    @pytest.mark.asyncio
    async def test_server_error(self):
        """An HTTP 500 on a listing fails that fetch and forces a new login."""
        fake = FakeUnifi()
        fake.fail_paths["/api/s/default/stat/sta"] = httpx.Response(500)
        async with make_controller(fake) as controller:
            sites = await controller.get_sites()
            with pytest.raises(SourceFetchFailed) as excinfo:
                await controller.get_clients(sites)
            assert excinfo.value.what == "clients"

            await controller.get_sites()
        logins = [r for r in fake.requests if r.url.path == "/api/login"]
        assert len(logins) == 2

    @pytest.mark.asyncio
    async def test_error_rc(self):
        """meta.rc other than ok is a failure."""
        fake = FakeUnifi()
        fake.fail_paths["/api/s/default/stat/device"] = httpx.Response(
            200, json={"meta": {"rc": "error", "msg": "api.err.NoPermission"}, "data": []}
        )
        async with make_controller(fake) as controller:
            with pytest.raises(SourceFetchFailed) as excinfo:
                await controller.fetch_inventory()
        assert excinfo.value.what == "devices"
        assert "NoPermission" in str(excinfo.value)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        [{"name": "default"}],
        "maintenance",
        {"meta": {"rc": "ok"}, "data": ["default"]},
    ])
    async def test_malformed_payload(self, body):
        """Payloads of the wrong shape fail the fetch instead of crashing."""
        fake = FakeUnifi()
        fake.fail_paths["/api/self/sites"] = httpx.Response(200, json=body)
        async with make_controller(fake) as controller:
            with pytest.raises(SourceFetchFailed) as excinfo:
                await controller.get_sites()
        assert excinfo.value.what == "sites"

    @pytest.mark.asyncio
    async def test_injected_client_left_open(self):
        """A caller-supplied HTTP client is not closed."""
        controller = make_controller(FakeUnifi())
        http = controller._http
        await controller.close()
        assert not http.is_closed
        await http.aclose()
