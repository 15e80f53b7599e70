"""Finds development-mode devices announcing themselves over mDNS."""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Final

from ..log import FleetprovLogger

DEVICE_SERVICE_TYPE: Final = "_ssh._tcp.local."
# development-mode devices register their SSH service under this subtype
DEVICE_SERVICE_SUBTYPE: Final = "_fleet-device._sub._ssh._tcp.local."

RESOLVE_TIMEOUT_MS: Final = 3000


class DiscoveryError(Exception):
    pass


@dataclass(frozen=True)
class DiscoveredDevice:
    host: str
    """mDNS host name, without the trailing dot."""
    address: str


class MdnsDiscovery:
    def __init__(
        self,
        logger: FleetprovLogger,
        zeroconf_factory: Callable[[], Any] | None = None,
        browser_factory: Callable[..., Any] | None = None,
        wait: Callable[[float], None] = time.sleep,
    ) -> None:
        self._logger = logger
        self._zeroconf_factory = zeroconf_factory
        self._browser_factory = browser_factory
        self._wait = wait

    def discover(self, timeout: float) -> list[DiscoveredDevice]:
        """Browses for ``timeout`` seconds, then resolves every service
        announced meanwhile. Devices are returned in announcement order."""

        from zeroconf import Error as ZeroconfError
        from zeroconf import ServiceBrowser, ServiceStateChange, Zeroconf

        make_zc = self._zeroconf_factory or Zeroconf
        make_browser = self._browser_factory or ServiceBrowser

        # handlers run on the zeroconf thread
        lock = threading.Lock()
        names: list[str] = []

        def on_change(
            zeroconf: Any,
            service_type: str,
            name: str,
            state_change: Any,
        ) -> None:
            if state_change is not ServiceStateChange.Added:
                return
            with lock:
                if name not in names:
                    names.append(name)

        self._logger.D(f"browsing {DEVICE_SERVICE_SUBTYPE} for {timeout}s")
        try:
            zc = make_zc()
        except (OSError, ZeroconfError) as e:
            raise DiscoveryError(str(e)) from e

        try:
            browser = make_browser(zc, DEVICE_SERVICE_SUBTYPE, handlers=[on_change])
            try:
                self._wait(timeout)
            finally:
                browser.cancel()

            with lock:
                announced = list(names)
            self._logger.D(f"{len(announced)} service(s) announced")

            found: dict[str, DiscoveredDevice] = {}
            for name in announced:
                dev = self._resolve(zc, name)
                if dev is not None and dev.host not in found:
                    found[dev.host] = dev
            return list(found.values())
        except (OSError, ZeroconfError) as e:
            raise DiscoveryError(str(e)) from e
        finally:
            zc.close()

    def _resolve(self, zc: Any, name: str) -> DiscoveredDevice | None:
        from zeroconf import IPVersion

        info = zc.get_service_info(DEVICE_SERVICE_TYPE, name, timeout=RESOLVE_TIMEOUT_MS)
        if info is None:
            self._logger.D(f"{name}: could not be resolved")
            return None

        addresses = info.parsed_addresses(IPVersion.V4Only)
        if not addresses:
            self._logger.D(f"{name}: no IPv4 address announced")
            return None

        host = (info.server or name).rstrip(".")
        return DiscoveredDevice(host, addresses[0])


def discover_devices(logger: FleetprovLogger, timeout: float) -> list[DiscoveredDevice]:
    return MdnsDiscovery(logger).discover(timeout)
