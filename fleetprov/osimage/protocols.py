from typing import Any, Protocol, Sequence

from .answers import ResolvedAnswers
from .manifest import DeviceTypeManifest, OptionLeaf
from .target import ApplicationTarget, DeviceTarget


class ProvidesTargets(Protocol):
    """Looks up provisioning targets registered with the fleet."""

    def get_device(self, uuid: str) -> DeviceTarget:
        """Returns the device with the given UUID. Raises RetrievalError if
        there is no such device."""
        ...

    def get_application(self, name_or_slug: str) -> ApplicationTarget:
        """Returns the application by name, slug or numeric ID. Raises
        RetrievalError if there is no such application."""
        ...


class ProvidesDeviceTypes(Protocol):
    def get_device_type_manifest(self, slug: str) -> DeviceTypeManifest:
        """Returns the fleet's manifest for a device type slug. Raises
        ManifestError for unknown slugs."""
        ...


class ProvidesImageManifest(Protocol):
    def get_manifest(self, image_path: str, slug: str) -> DeviceTypeManifest:
        """Returns the device type manifest applicable to the image."""
        ...


class ReadsOsVersion(Protocol):
    def get_os_version(
        self,
        image_path: str,
        manifest: DeviceTypeManifest,
    ) -> str | None: ...


class AsksQuestions(Protocol):
    def ask(
        self,
        questions: Sequence[OptionLeaf],
        defaults: ResolvedAnswers,
    ) -> ResolvedAnswers:
        """Returns ``defaults`` completed with answers for every question
        that is applicable but not yet answered."""
        ...


class GeneratesDescriptors(Protocol):
    def generate_device_config(
        self,
        device: DeviceTarget,
        api_key: str | None,
        answers: ResolvedAnswers,
    ) -> dict[str, Any]: ...

    def generate_application_config(
        self,
        application: ApplicationTarget,
        answers: ResolvedAnswers,
    ) -> dict[str, Any]: ...


class WritesImageFiles(Protocol):
    def write_file(
        self,
        image_path: str,
        partition: int,
        path: str,
        content: bytes,
    ) -> None:
        """Writes ``content`` to ``path`` inside the given partition, creating
        the parent directory if needed. Raises OSError or RuntimeError on
        failure."""
        ...

