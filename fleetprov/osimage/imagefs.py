"""Access to files in the FAT boot partition of a raw disk image.

The image is never mounted: partition offsets come from ``sfdisk --json``,
and files are read and written with the ``mtools`` suite through the
``IMAGE@@OFFSET`` drive syntax."""

import json
import os
import posixpath
import subprocess
import tempfile
from typing import Final

from ..log import FleetprovLogger
from .configure import BOOT_PARTITION
from .errors import ManifestError
from .manifest import DeviceTypeManifest
from .protocols import ProvidesDeviceTypes

MANIFEST_PATH: Final = "/device-type.json"
OS_RELEASE_PATH: Final = "/os-release"

DEFAULT_SECTOR_SIZE: Final = 512

# mtools otherwise refuses images whose FAT geometry looks unusual
_MTOOLS_ENV: Final = {"MTOOLS_SKIP_CHECK": "1"}


def parse_partition_offset(
    sfdisk_json: str,
    image_path: str,
    partition: int,
) -> int:
    """Returns the byte offset of the 1-based ``partition`` from the output
    of ``sfdisk --json``."""

    try:
        table = json.loads(sfdisk_json)["partitiontable"]
    except (ValueError, KeyError) as e:
        raise RuntimeError(f"unrecognized partition table of image '{image_path}'") from e

    sector_size = int(table.get("sectorsize", DEFAULT_SECTOR_SIZE))
    parts = table.get("partitions", [])

    for i, p in enumerate(parts):
        node: str = p.get("node", "")
        suffix = node[len(image_path) :] if node.startswith(image_path) else ""
        suffix = suffix.lstrip("p")
        nr = int(suffix) if suffix.isdigit() else i + 1
        if nr == partition:
            return int(p["start"]) * sector_size

    raise RuntimeError(f"image '{image_path}' has no partition {partition}")


class MtoolsImage:
    def __init__(self, logger: FleetprovLogger) -> None:
        self._logger = logger
        self._offsets: dict[tuple[str, int], int] = {}

    def _run(self, argv: list[str]) -> subprocess.CompletedProcess[bytes]:
        self._logger.D(f"about to call {argv[0]}: argv={argv}")
        return subprocess.run(
            argv,
            capture_output=True,
            env={**os.environ, **_MTOOLS_ENV},
        )

    def get_partition_offset(self, image_path: str, partition: int) -> int:
        key = (image_path, partition)
        if key in self._offsets:
            return self._offsets[key]

        argv = ["sfdisk", "--json", image_path]
        p = self._run(argv)
        if p.returncode != 0:
            raise RuntimeError(
                f"sfdisk failed: command {' '.join(argv)} returned {p.returncode}"
            )

        offset = parse_partition_offset(
            p.stdout.decode("utf-8", "replace"),
            image_path,
            partition,
        )
        self._logger.D(f"partition {partition} of {image_path} is at offset {offset}")
        self._offsets[key] = offset
        return offset

    def _drive(self, image_path: str, partition: int) -> str:
        return f"{image_path}@@{self.get_partition_offset(image_path, partition)}"

    def read_file(self, image_path: str, partition: int, path: str) -> bytes | None:
        """Returns the content of ``path`` in the partition, or None if the
        file cannot be read."""

        drive = self._drive(image_path, partition)
        p = self._run(["mtype", "-i", drive, f"::{path}"])
        if p.returncode != 0:
            self._logger.D(
                f"mtype {path} failed: {p.stderr.decode('utf-8', 'replace').strip()}"
            )
            return None
        return p.stdout

    def _ensure_dir(self, drive: str, dirname: str) -> None:
        if dirname in ("", "/"):
            return

        if self._run(["mdir", "-b", "-i", drive, f"::{dirname}"]).returncode == 0:
            return

        self._ensure_dir(drive, posixpath.dirname(dirname))
        argv = ["mmd", "-i", drive, f"::{dirname}"]
        p = self._run(argv)
        if p.returncode != 0:
            raise RuntimeError(
                f"mmd failed: command {' '.join(argv)} returned {p.returncode}"
            )

    def write_file(
        self,
        image_path: str,
        partition: int,
        path: str,
        content: bytes,
    ) -> None:
        drive = self._drive(image_path, partition)
        self._ensure_dir(drive, posixpath.dirname(path))

        with tempfile.NamedTemporaryFile(prefix="fleetprov-") as tmp:
            tmp.write(content)
            tmp.flush()

            argv = ["mcopy", "-o", "-i", drive, tmp.name, f"::{path}"]
            p = self._run(argv)
            if p.returncode != 0:
                raise RuntimeError(
                    f"mcopy failed: command {' '.join(argv)} returned {p.returncode}"
                )


class ImageManifestProvider:
    """Prefers the manifest shipped inside the image, so that images built
    for newer device type revisions are configured accordingly."""

    def __init__(
        self,
        logger: FleetprovLogger,
        image: MtoolsImage,
        device_types: ProvidesDeviceTypes,
    ) -> None:
        self._logger = logger
        self._image = image
        self._device_types = device_types

    def get_manifest(self, image_path: str, slug: str) -> DeviceTypeManifest:
        try:
            content = self._image.read_file(image_path, BOOT_PARTITION, MANIFEST_PATH)
        except RuntimeError as e:
            self._logger.D(f"cannot inspect image: {e}")
            content = None

        if content is not None:
            try:
                return DeviceTypeManifest.from_dict(json.loads(content))
            except (ValueError, ManifestError) as e:
                self._logger.W(f"ignoring the unusable device type manifest in the image: {e}")

        self._logger.D(f"fetching the device type manifest for {slug}")
        return self._device_types.get_device_type_manifest(slug)


def parse_os_release(content: str) -> dict[str, str]:
    result: dict[str, str] = {}
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        k, v = line.split("=", 1)
        v = v.strip()
        if len(v) >= 2 and v[0] == v[-1] and v[0] in "\"'":
            v = v[1:-1]
        result[k.strip()] = v
    return result


def pick_os_version(os_release: dict[str, str]) -> str | None:
    for k, v in os_release.items():
        if k.startswith("META_") and k.endswith("_VERSION") and v:
            return v
    return os_release.get("VERSION_ID") or os_release.get("VERSION") or None


class OsReleaseVersionReader:
    def __init__(self, logger: FleetprovLogger, image: MtoolsImage) -> None:
        self._logger = logger
        self._image = image

    def get_os_version(
        self,
        image_path: str,
        manifest: DeviceTypeManifest,
    ) -> str | None:
        content = self._image.read_file(image_path, BOOT_PARTITION, OS_RELEASE_PATH)
        if content is None:
            return None

        version = pick_os_version(parse_os_release(content.decode("utf-8", "replace")))
        self._logger.D(f"OS version of {manifest.slug} image {image_path}: {version}")
        return version
