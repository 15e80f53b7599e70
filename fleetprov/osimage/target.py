from dataclasses import dataclass
from typing import TypeAlias

from .errors import UsageError


@dataclass(frozen=True)
class DeviceTarget:
    """A device already registered with the fleet, bound to an application."""

    uuid: str
    id: int
    device_type: str
    application_id: int | None = None
    application_name: str | None = None


@dataclass(frozen=True)
class ApplicationTarget:
    slug: str
    id: int
    name: str
    device_type: str
    """The application's default device type slug."""


ProvisioningTarget: TypeAlias = DeviceTarget | ApplicationTarget


def ensure_single_target(device: str | None, application: str | None) -> None:
    if device and application:
        raise UsageError(
            "the '--device' and '--application' options are mutually exclusive"
        )
    if not device and not application:
        raise UsageError(
            "either the '--device' or the '--application' option must be provided"
        )
