import time
from typing import Any, Final, Protocol

from ..log import FleetprovLogger
from .answers import (
    A_DEVICE_TYPE,
    A_VERSION,
    Q_APP_UPDATE_POLL_INTERVAL,
    Q_WIFI_KEY,
    Q_WIFI_SSID,
    ResolvedAnswers,
)
from .errors import UsageError
from .target import ApplicationTarget, DeviceTarget

DEFAULT_APP_UPDATE_POLL_INTERVAL: Final = 10  # minutes
DEFAULT_LISTEN_PORT: Final = 48484
DEFAULT_VPN_PORT: Final = 443


class ProvidesAPIKeys(Protocol):
    @property
    def api_url(self) -> str: ...

    def generate_provisioning_key(self, application_id: int) -> str: ...

    def generate_device_key(self, device_id: int) -> str: ...


def _poll_interval_ms(answers: ResolvedAnswers) -> int:
    v = answers.get(Q_APP_UPDATE_POLL_INTERVAL, DEFAULT_APP_UPDATE_POLL_INTERVAL)
    try:
        minutes = int(v)
    except ValueError as e:
        raise UsageError(
            f"invalid {Q_APP_UPDATE_POLL_INTERVAL} '{v}': expected a number of minutes"
        ) from e
    return minutes * 60 * 1000


class FleetDescriptorGenerator:
    """Generates the ``config.json`` descriptor a device reads on first boot."""

    def __init__(self, logger: FleetprovLogger, keys: ProvidesAPIKeys) -> None:
        self._logger = logger
        self._keys = keys

    def _base_config(
        self,
        application_id: int | None,
        application_name: str | None,
        answers: ResolvedAnswers,
    ) -> dict[str, Any]:
        config: dict[str, Any] = {
            "applicationId": application_id,
            "applicationName": application_name,
            "deviceType": answers[A_DEVICE_TYPE],
            "apiEndpoint": self._keys.api_url,
            "appUpdatePollInterval": _poll_interval_ms(answers),
            "listenPort": DEFAULT_LISTEN_PORT,
            "vpnPort": DEFAULT_VPN_PORT,
        }
        if A_VERSION in answers:
            config["version"] = answers[A_VERSION]

        if ssid := answers.get(Q_WIFI_SSID):
            config["wifiSsid"] = ssid
            config["wifiKey"] = answers.get(Q_WIFI_KEY) or ""

        return config

    def generate_application_config(
        self,
        application: ApplicationTarget,
        answers: ResolvedAnswers,
    ) -> dict[str, Any]:
        config = self._base_config(application.id, application.name, answers)

        self._logger.D(f"generating a provisioning key for application {application.slug}")
        config["apiKey"] = self._keys.generate_provisioning_key(application.id)
        return config

    def generate_device_config(
        self,
        device: DeviceTarget,
        api_key: str | None,
        answers: ResolvedAnswers,
    ) -> dict[str, Any]:
        config = self._base_config(
            device.application_id,
            device.application_name,
            answers,
        )

        if not api_key:
            self._logger.D(f"generating a device key for device {device.uuid}")
            api_key = self._keys.generate_device_key(device.id)

        config.update(
            {
                "uuid": device.uuid,
                "deviceId": device.id,
                "registered_at": int(time.time()),
                "deviceApiKey": api_key,
            }
        )
        return config
