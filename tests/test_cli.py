"""Tests for the scraper loop and CLI entry point."""
import logging

import pytest
from unifi_dns_scraper import __version__, cli
from unifi_dns_scraper.config import ScraperConfig
from unifi_dns_scraper.controller.base import (
    ControllerClient,
    Devices,
    Observation,
    Site,
    SourceFetchFailed,
)
from unifi_dns_scraper.reconcile import HOSTS_HEADER


class StubController(ControllerClient):
    """Stands in for UnifiController; behaviour is set on the class."""

    clients = [Observation(address="192.168.1.100", names=["laptop"])]
    fail = False
    closed = 0

    def __init__(self, settings, http=None):
        self.settings = settings

    async def get_sites(self):
        if StubController.fail:
            raise SourceFetchFailed("sites", "connection refused")
        return [Site(name="default")]

    async def get_clients(self, sites):
        return list(StubController.clients)

    async def get_devices(self, sites):
        return Devices(switches=[Observation(address="192.168.1.2", names=["switch"])])

    async def close(self):
        StubController.closed += 1


@pytest.fixture
def stub_controller(monkeypatch):
    monkeypatch.setattr(cli, "UnifiController", StubController)
    StubController.fail = False
    StubController.closed = 0
    yield StubController


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "scraper.yaml"
    path.write_text(
        f"""
controller:
  host: https://unifi.example.com
hostsfile:
  filename: {tmp_path / "hosts"}
database:
  driver: sqlite
  dsn: {tmp_path / "pdns.db"}
processing:
  domains: [example.com]
  cnames:
    - cname: www.example.com
      hostname: laptop.example.com
"""
    )
    return path


class TestScraperLoop:
    """Tests for ScraperLoop."""

    @pytest.mark.asyncio
    async def test_run_once_writes_outputs(self, stub_controller, config_file, tmp_path):
        """A successful cycle writes the hosts file and the records."""
        loop = cli.ScraperLoop(config_file)
        try:
            result = await loop.run_once(ScraperConfig.load(config_file))
            assert result.success
            assert (tmp_path / "hosts").read_text() == HOSTS_HEADER + (
                "192.168.1.2 switch.example.com\n"
                "192.168.1.100 laptop.example.com\n"
            )
            assert loop.store.existing_records("A") == {
                "switch.example.com": "192.168.1.2",
                "laptop.example.com": "192.168.1.100",
            }
            assert loop.store.existing_records("CNAME") == {
                "www.example.com": "laptop.example.com"
            }
            assert stub_controller.closed == 1
        finally:
            loop.close()

    @pytest.mark.asyncio
    async def test_failed_cycle_leaves_outputs(self, stub_controller, config_file, tmp_path):
        """When the controller fails, outputs keep the last good state."""
        loop = cli.ScraperLoop(config_file)
        config = ScraperConfig.load(config_file)
        try:
            await loop.run_once(config)
            before = (tmp_path / "hosts").read_text()

            stub_controller.fail = True
            result = await loop.run_once(config)

            assert not result.success
            assert (tmp_path / "hosts").read_text() == before
            assert [e.primary_name for e in loop.entries] == ["switch", "laptop"]
        finally:
            loop.close()

    @pytest.mark.asyncio
    async def test_run_single_pass(self, stub_controller, config_file, caplog):
        """run() returns after one loop when not daemonized."""
        loop = cli.ScraperLoop(config_file)
        try:
            with caplog.at_level(logging.INFO):
                assert await loop.run() == 0
        finally:
            loop.close()
        assert loop.loop_count == 1
        assert "** Starting loop 1 **" in caplog.text


class TestMain:
    """Tests for the CLI entry point."""

    @pytest.fixture(autouse=True)
    def no_log_file(self, monkeypatch):
        monkeypatch.setenv("SCRAPER_LOG_FILE", "")
        yield
        logging.getLogger("unifi_dns_scraper").handlers.clear()

    def test_version(self, capsys):
        """--version prints the package version."""
        with pytest.raises(SystemExit) as excinfo:
            cli.main(["--version"])
        assert excinfo.value.code == 0
        assert __version__ in capsys.readouterr().out

    def test_once(self, stub_controller, config_file, tmp_path):
        """--once runs a single cycle and exits 0."""
        assert cli.main(["--config", str(config_file), "--once"]) == 0
        assert (tmp_path / "hosts").exists()

    def test_invalid_config(self, tmp_path):
        """A bad configuration exits 1."""
        path = tmp_path / "scraper.yaml"
        path.write_text("sleep: -1\n")
        assert cli.main(["--config", str(path)]) == 1

    def test_missing_config(self, tmp_path):
        """A missing configuration file exits 1."""
        assert cli.main(["--config", str(tmp_path / "nope.yaml")]) == 1
