from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Final, Iterable, Mapping, TYPE_CHECKING

from ..log import FleetprovLogger
from ..utils.porcelain import PorcelainEntity, PorcelainEntityType

if TYPE_CHECKING:
    import requests

DOCKER_INFO_PROPERTIES: Final = (
    "Containers",
    "ContainersRunning",
    "ContainersPaused",
    "ContainersStopped",
    "Images",
    "Driver",
    "SystemTime",
    "KernelVersion",
    "OperatingSystem",
    "Architecture",
)

DOCKER_VERSION_PROPERTIES: Final = ("Version", "ApiVersion")

INFO_UNAVAILABLE_MSG: Final = "Could not get Docker info"
VERSION_UNAVAILABLE_MSG: Final = "Could not get Docker version"

MAX_WORKERS: Final = 16


class PorcelainScanResultV1(PorcelainEntity):
    host: str
    address: str | None
    docker_info: dict[str, Any] | str
    docker_version: dict[str, Any] | str


@dataclass
class DeviceScanResult:
    host: str
    docker_info: dict[str, Any] | str
    """Engine info, or a message if it could not be queried."""
    docker_version: dict[str, Any] | str
    address: str | None = None
    """Address the engine was reached at, when discovered over mDNS."""

    def reduced(self) -> "DeviceScanResult":
        return DeviceScanResult(
            self.host,
            pick_properties(self.docker_info, DOCKER_INFO_PROPERTIES),
            pick_properties(self.docker_version, DOCKER_VERSION_PROPERTIES),
            self.address,
        )

    def to_porcelain(self) -> PorcelainScanResultV1:
        return {
            "ty": PorcelainEntityType.ScanResultV1,
            "host": self.host,
            "address": self.address,
            "docker_info": self.docker_info,
            "docker_version": self.docker_version,
        }


def pick_properties(
    obj: dict[str, Any] | str,
    keys: Iterable[str],
) -> dict[str, Any] | str:
    if not isinstance(obj, dict):
        return obj
    return {k: obj[k] for k in keys if k in obj}


class DeviceProber:
    """Talks to the container engine API exposed by development devices."""

    def __init__(self, logger: FleetprovLogger, port: int, timeout: float) -> None:
        self._logger = logger
        self.port = port
        self.timeout = timeout

    def _get(self, host: str, path: str) -> "requests.Response":
        import requests

        from ..version import FLEETPROV_USER_AGENT

        return requests.get(
            f"http://{host}:{self.port}{path}",
            headers={"User-Agent": FLEETPROV_USER_AGENT},
            timeout=self.timeout,
        )

    def ping(self, host: str) -> bool:
        import requests

        try:
            resp = self._get(host, "/_ping")
        except requests.RequestException as e:
            self._logger.D(f"{host}: not reachable: {e}")
            return False

        if resp.status_code != 200:
            self._logger.D(f"{host}: ping failed: status code {resp.status_code}")
            return False
        return True

    def _get_json(self, host: str, path: str, fallback: str) -> dict[str, Any] | str:
        import requests

        try:
            resp = self._get(host, path)
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            self._logger.D(f"{host}: querying {path} failed: {e}")
            return fallback

        return data if isinstance(data, dict) else fallback

    def query(self, host: str, address: str | None = None) -> DeviceScanResult:
        target = address or host
        return DeviceScanResult(
            host,
            self._get_json(target, "/info", INFO_UNAVAILABLE_MSG),
            self._get_json(target, "/version", VERSION_UNAVAILABLE_MSG),
            address,
        )

    def probe(self, host: str, address: str | None = None) -> DeviceScanResult | None:
        if not self.ping(address or host):
            return None
        return self.query(host, address)


def scan_hosts(
    logger: FleetprovLogger,
    prober: DeviceProber,
    hosts: Iterable[str],
    verbose: bool = False,
    addresses: Mapping[str, str] | None = None,
) -> list[DeviceScanResult]:
    """Probes the hosts concurrently, returning results for the responsive
    ones in input order.

    Hosts found in ``addresses`` are contacted at the mapped address
    instead of by name."""

    candidates = list(dict.fromkeys(hosts))
    if not candidates:
        return []

    addrs = addresses or {}
    logger.D(f"scanning {len(candidates)} host(s) on port {prober.port}")
    with ThreadPoolExecutor(max_workers=min(MAX_WORKERS, len(candidates))) as executor:
        results = list(
            executor.map(
                prober.probe,
                candidates,
                [addrs.get(h) for h in candidates],
            )
        )

    found = [r for r in results if r is not None]
    if not verbose:
        found = [r.reduced() for r in found]
    return found
