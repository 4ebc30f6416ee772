"""Scraper settings loaded from YAML configuration.

Example ``scraper.yaml``:

```yaml
daemonize: true
sleep: 120
max_age: 86400

controller:
  host: https://unifi.example.com
  username: admin
  password: secret
  verify_ssl: false

hostsfile:
  filename: /etc/hosts.d/unifi

database:
  driver: sqlite
  dsn: /var/lib/unifi-dns-scraper/pdns.db

processing:
  domains: [example.com, local]
  keep_macs: false
  additional:
    - ip: 192.168.1.1
      name: unifi
      exclusive: true
    - ip: 192.168.1.5
      hostnames: [nas, files]
  blocked:
    - ip: 192.168.90.2
    - name: powerwall
  cnames:
    - cname: www.example.com
      hostname: web.example.com
```
"""
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from ..reconcile.schema import IPAddress, InvalidAddress, parse_address

logger = logging.getLogger(__name__)

DEFAULT_SLEEP = 120

# Environment variables that override the controller section
ENV_OVERRIDES = {
    "SCRAPER_UNIFI_HOST": "host",
    "SCRAPER_UNIFI_USER": "username",
    "SCRAPER_UNIFI_PASSWORD": "password",
}


class ConfigurationInvalid(Exception):
    """The configuration file is missing, unreadable or inconsistent."""
    pass


@dataclass
class ControllerSettings:
    """Connection details for the UniFi controller."""
    host: str = ""
    username: str = ""
    password: str = ""
    verify_ssl: bool = True
    timeout: float = 30


@dataclass
class HostsfileSettings:
    filename: str = ""


@dataclass
class DatabaseSettings:
    driver: str = ""
    dsn: str = ""

    @property
    def enabled(self) -> bool:
        return bool(self.driver and self.dsn)


@dataclass
class StaticHost:
    """A host defined in configuration instead of discovered live."""
    ip: str
    names: list[str]
    # No other source may claim these names at a different address
    exclusive: bool = False


@dataclass
class BlockRule:
    """Keeps matching hosts out of the output.

    Name and address both set: both must match.
    Only one set: that one alone decides.
    """
    name: str = ""
    address: Optional[IPAddress] = None

    def matches(self, names: list[str], address: IPAddress) -> bool:
        wanted = self.name.strip().lower()
        if wanted:
            if not any(n.strip().lower() == wanted for n in names):
                return False
            return self.address is None or self.address == address
        if self.address is not None:
            return self.address == address
        return False


@dataclass
class AliasRule:
    """A CNAME pointing at a name the scraper already publishes."""
    cname: str
    hostname: str


@dataclass
class ProcessingSettings:
    """Everything the reconciliation pipeline needs to know."""
    domains: list[str] = field(default_factory=list)
    keep_macs: bool = False
    additional: list[StaticHost] = field(default_factory=list)
    blocked: list[BlockRule] = field(default_factory=list)
    cnames: list[AliasRule] = field(default_factory=list)
    # Seconds; 0 disables age-based removal
    max_age: int = 0


@dataclass
class ScraperConfig:
    """Complete scraper configuration."""
    daemonize: bool = False
    sleep: int = DEFAULT_SLEEP
    controller: ControllerSettings = field(default_factory=ControllerSettings)
    hostsfile: HostsfileSettings = field(default_factory=HostsfileSettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    processing: ProcessingSettings = field(default_factory=ProcessingSettings)
    path: Optional[str] = None

    @classmethod
    def load(cls, config_path: Optional[Union[str, Path]] = None, apply_env: bool = True) -> "ScraperConfig":
        """Load and validate the YAML configuration.

        Raises:
            ConfigurationInvalid: If the file is missing or invalid
        """
        path = Path(config_path) if config_path else find_config()
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigurationInvalid(f"Cannot read configuration file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigurationInvalid(f"Cannot parse configuration file {path}: {e}") from e

        config = cls.from_dict(data)
        config.path = str(path)
        if apply_env:
            config.apply_env_overrides()
        return config

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScraperConfig":
        if not isinstance(data, dict):
            raise ConfigurationInvalid("Configuration must be a mapping")

        sleep = _get_int(data, "sleep", DEFAULT_SLEEP) or DEFAULT_SLEEP
        if sleep < 0:
            raise ConfigurationInvalid(f"sleep must not be negative: {sleep}")

        controller_data = _get_section(data, "controller")
        controller = ControllerSettings(
            host=str(controller_data.get("host", "") or ""),
            username=str(controller_data.get("username", controller_data.get("user", "")) or ""),
            password=str(controller_data.get("password", "") or ""),
            verify_ssl=_get_bool(controller_data, "verify_ssl", True, "controller.verify_ssl"),
            timeout=_get_float(controller_data, "timeout", 30),
        )

        hostsfile_data = _get_section(data, "hostsfile")
        hostsfile = HostsfileSettings(filename=str(hostsfile_data.get("filename", "") or ""))

        database_data = _get_section(data, "database")
        database = DatabaseSettings(
            driver=str(database_data.get("driver", "") or "").lower(),
            dsn=str(database_data.get("dsn", "") or ""),
        )

        processing = _parse_processing(_get_section(data, "processing"))
        processing.max_age = _get_int(data, "max_age", 0)
        if processing.max_age < 0:
            raise ConfigurationInvalid(f"max_age must not be negative: {processing.max_age}")

        if (hostsfile.filename or database.enabled) and not processing.domains:
            raise ConfigurationInvalid("processing.domains must list at least one domain")

        return cls(
            daemonize=_get_bool(data, "daemonize", False),
            sleep=sleep,
            controller=controller,
            hostsfile=hostsfile,
            database=database,
            processing=processing,
        )

    def apply_env_overrides(self) -> None:
        """Let environment variables override controller credentials."""
        for env_name, attr in ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value:
                logger.debug(f"Using {env_name} for controller {attr}")
                setattr(self.controller, attr, value)


def find_config() -> Path:
    """Find the scraper.yaml config file."""
    search_paths = [
        Path.cwd() / "configs" / "scraper.yaml",
        Path.cwd() / "scraper.yaml",
        Path.home() / ".config" / "unifi-dns-scraper" / "scraper.yaml",
        Path("/etc/unifi-dns-scraper/scraper.yaml"),
    ]

    for path in search_paths:
        if path.exists():
            return path

    raise ConfigurationInvalid(
        "Could not find scraper.yaml. Create one in ./configs/scraper.yaml or pass --config"
    )


def _get_section(data: dict, key: str) -> dict:
    section = data.get(key) or {}
    if not isinstance(section, dict):
        raise ConfigurationInvalid(f"'{key}' must be a mapping")
    return section


def _get_list(data: dict, key: str) -> list:
    value = data.get(key) or []
    if not isinstance(value, list):
        raise ConfigurationInvalid(f"'{key}' must be a list")
    return value


def _get_int(data: dict, key: str, default: int) -> int:
    value = data.get(key, default)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationInvalid(f"'{key}' must be an integer, got {value!r}") from e


def _get_float(data: dict, key: str, default: float) -> float:
    value = data.get(key, default)
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigurationInvalid(f"'{key}' must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationInvalid(f"'{key}' must be a number, got {value!r}") from e


TRUE_STRINGS = {"true", "yes", "on", "1"}
FALSE_STRINGS = {"false", "no", "off", "0"}


def _get_bool(data: dict, key: str, default: bool, label: str = "") -> bool:
    """Read a flag, accepting YAML booleans and quoted true/false strings."""
    value = data.get(key, default)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_STRINGS:
            return True
        if lowered in FALSE_STRINGS:
            return False
    raise ConfigurationInvalid(f"'{label or key}' must be true or false, got {value!r}")


def _parse_processing(data: dict) -> ProcessingSettings:
    domains = [str(d).strip() for d in _get_list(data, "domains")]
    if any(not d.strip(".") for d in domains):
        raise ConfigurationInvalid("processing.domains must not contain empty domains")

    additional = []
    for i, item in enumerate(_get_list(data, "additional")):
        if not isinstance(item, dict):
            raise ConfigurationInvalid(f"processing.additional[{i}] must be a mapping")
        # Parsed per cycle; a bad address only drops this host
        ip = str(item.get("ip", "") or "").strip()

        # hostnames wins over name when both are given
        hostnames = item.get("hostnames") or []
        if isinstance(hostnames, str):
            hostnames = [hostnames]
        names = [str(h) for h in hostnames] if hostnames else [str(item.get("name", "") or "")]
        names = [n.strip() for n in names if n and n.strip()]
        if not names:
            raise ConfigurationInvalid(f"processing.additional[{i}] ({ip}) has no name")

        additional.append(StaticHost(
            ip=ip,
            names=names,
            exclusive=_get_bool(item, "exclusive", False, f"processing.additional[{i}].exclusive"),
        ))

    blocked = []
    for i, item in enumerate(_get_list(data, "blocked")):
        if not isinstance(item, dict):
            raise ConfigurationInvalid(f"processing.blocked[{i}] must be a mapping")
        name = str(item.get("name", "") or "").strip()
        ip = str(item.get("ip", "") or "").strip()
        if not name and not ip:
            raise ConfigurationInvalid(f"processing.blocked[{i}] needs a name or an ip")
        address = None
        if ip:
            try:
                address = parse_address(ip)
            except InvalidAddress as e:
                raise ConfigurationInvalid(f"processing.blocked[{i}]: {e}") from e
        blocked.append(BlockRule(name=name, address=address))

    cnames = []
    for i, item in enumerate(_get_list(data, "cnames")):
        if not isinstance(item, dict) or not item.get("cname") or not item.get("hostname"):
            raise ConfigurationInvalid(f"processing.cnames[{i}] needs both cname and hostname")
        cnames.append(AliasRule(
            cname=str(item["cname"]).strip().rstrip("."),
            hostname=str(item["hostname"]).strip().rstrip("."),
        ))

    return ProcessingSettings(
        domains=domains,
        keep_macs=_get_bool(data, "keep_macs", False, "processing.keep_macs"),
        additional=additional,
        blocked=blocked,
        cnames=cnames,
    )
