from typing import Final

from .errors import IncompatibleDeviceTypeError
from .manifest import DeviceTypeManifest
from .protocols import ProvidesDeviceTypes

# spellings of the same architecture family
_ARCH_ALIASES: Final[dict[str, str]] = {
    "amd64": "x86_64",
    "em64t": "x86_64",
    "arm64": "aarch64",
    "armv8": "aarch64",
    "i686": "i386",
}


def canonicalize_arch(arch: str | None) -> str | None:
    if arch is None:
        return None
    arch = arch.lower()
    return _ARCH_ALIASES.get(arch, arch)


def are_device_types_compatible(
    app_device_type: DeviceTypeManifest,
    os_device_type: DeviceTypeManifest,
) -> bool:
    """Whether an OS image built for ``os_device_type`` can run an
    application declared for ``app_device_type``.

    Both must share the same architecture family and boot the same way
    (dependent devices are brought up by a gateway instead of booting an OS
    image on their own)."""

    return (
        canonicalize_arch(app_device_type.arch)
        == canonicalize_arch(os_device_type.arch)
        and app_device_type.is_dependent == os_device_type.is_dependent
    )


def check_device_type_compatibility(
    device_types: ProvidesDeviceTypes,
    app_device_type: str,
    override_device_type: str | None,
    app_label: str,
) -> None:
    if not override_device_type:
        return

    app_manifest = device_types.get_device_type_manifest(app_device_type)
    override_manifest = device_types.get_device_type_manifest(override_device_type)
    if not are_device_types_compatible(app_manifest, override_manifest):
        raise IncompatibleDeviceTypeError(override_device_type, app_label)
