import enum
import json
import os.path
import posixpath
from dataclasses import dataclass, field
from typing import Any, Callable, Final, Literal, Mapping, Sequence

import semver

from ..log import FleetprovLogger
from .answers import (
    A_DEVICE_TYPE,
    A_VERSION,
    ResolvedAnswers,
    build_answer_sources,
    resolve_answers,
)
from .compat import check_device_type_compatibility
from .errors import (
    UsageError,
    VersionRequiredError,
    WriteError,
)
from .manifest import DeviceTypeManifest, OptionLeaf, extract_question_names, iter_group_questions
from .protocols import (
    AsksQuestions,
    GeneratesDescriptors,
    ProvidesDeviceTypes,
    ProvidesImageManifest,
    ProvidesTargets,
    ReadsOsVersion,
    WritesImageFiles,
)
from .target import ApplicationTarget, DeviceTarget, ProvisioningTarget, ensure_single_target

BOOT_PARTITION: Final = 1
CONNECTIONS_FOLDER: Final = "/system-connections"

DEVICE_API_KEY_DEPRECATION_MSG: Final = (
    "The --device-api-key option is deprecated and will be removed in a future release. "
    "A suitable key is automatically generated or fetched if this option is omitted."
)


class ProvisionState(enum.Enum):
    SELECT_TARGET = "select-target"
    VALIDATE_COMPATIBILITY = "validate-compatibility"
    RESOLVE_MANIFEST = "resolve-manifest"
    LOAD_SUPPLIED_CONFIG = "load-supplied-config"
    RESOLVE_ANSWERS = "resolve-answers"
    RESOLVE_VERSION = "resolve-version"
    ENSURE_CONFIG_DESCRIPTOR = "ensure-config-descriptor"
    WRITE_CONFIG_DESCRIPTOR = "write-config-descriptor"
    WRITE_SUPPLEMENTARY_FILES = "write-supplementary-files"
    DONE = "done"


@dataclass(frozen=True)
class Diagnostic:
    """A notice for the user, rendered by the caller."""

    level: Literal["info", "warn"]
    message: str


@dataclass(frozen=True)
class SupplementaryFile:
    name: str
    content: bytes
    source_path: str


@dataclass(frozen=True)
class OsConfigureRequest:
    image: str
    device: str | None = None
    application: str | None = None
    device_type: str | None = None
    """Overrides the application's device type."""
    config_path: str | None = None
    config_flags: Mapping[str, Any] = field(default_factory=dict)
    """``config-*`` command-line options, keyed by option name."""
    advanced: bool = False
    version: str | None = None
    device_api_key: str | None = None
    system_connections: Sequence[str] = ()


@dataclass
class OsConfigureResult:
    target: ProvisioningTarget
    manifest: DeviceTypeManifest
    answers: ResolvedAnswers
    config: dict[str, Any]
    written: list[str]


def normalize_os_version(version: str) -> str:
    """Validates a user-supplied OS version like ``2.32.0+rev1``, dropping a
    leading ``v`` if present."""

    v = version[1:] if version[:1] in ("v", "V") else version
    try:
        return str(semver.Version.parse(v))
    except ValueError as e:
        raise UsageError(
            f"invalid OS version '{version}'; expected something like '2.32.0' or '2.44.0+rev1'"
        ) from e


def validate_request(req: OsConfigureRequest, platform: str) -> list[Diagnostic]:
    """Checks the request for usage errors without doing network I/O.

    Returns the non-fatal diagnostics the request warrants."""

    if platform == "win32":
        raise UsageError(
            "unsupported platform: configuring OS images requires a Linux or macOS host, e.g. the Windows Subsystem for Linux"
        )

    ensure_single_target(req.device, req.application)

    if req.device_type and not req.application:
        raise UsageError(
            "the '--device-type' option can only be used in conjunction with the '--application' option"
        )

    if req.version:
        normalize_os_version(req.version)

    for p in req.system_connections:
        if not os.path.isfile(p):
            raise UsageError(f"system connection file '{p}' does not exist")

    diags: list[Diagnostic] = []
    if req.device_api_key:
        diags.append(Diagnostic("warn", DEVICE_API_KEY_DEPRECATION_MSG))
    return diags


def read_supplementary_files(paths: Sequence[str]) -> list[SupplementaryFile]:
    result: list[SupplementaryFile] = []
    for p in paths:
        with open(p, "rb") as fp:
            result.append(SupplementaryFile(os.path.basename(p), fp.read(), p))
    return result


def _load_config_json(path: str) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as fp:
            data = json.load(fp)
    except OSError as e:
        raise UsageError(f"cannot read config file '{path}': {e.strerror}") from e
    except json.JSONDecodeError as e:
        raise UsageError(f"config file '{path}' is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise UsageError(f"config file '{path}' must contain a JSON object")
    return data


class OsImageConfigurator:
    """Configures a downloaded OS image for a device or an application.

    A run walks the ``ProvisionState`` states strictly in order; nothing is
    written into the image before ``WRITE_CONFIG_DESCRIPTOR``, and failures
    from then on leave earlier writes in place."""

    def __init__(
        self,
        logger: FleetprovLogger,
        *,
        targets: ProvidesTargets,
        device_types: ProvidesDeviceTypes,
        image_manifests: ProvidesImageManifest,
        versions: ReadsOsVersion,
        prompter: AsksQuestions,
        descriptors: GeneratesDescriptors,
        writer: WritesImageFiles,
        platform: str = "linux",
        on_diagnostic: Callable[[Diagnostic], None] | None = None,
    ) -> None:
        self._logger = logger
        self._targets = targets
        self._device_types = device_types
        self._image_manifests = image_manifests
        self._versions = versions
        self._prompter = prompter
        self._descriptors = descriptors
        self._writer = writer
        self._platform = platform
        self._on_diagnostic = on_diagnostic

        self.state: ProvisionState | None = None
        self.visited_states: list[ProvisionState] = []
        self.diagnostics: list[Diagnostic] = []
        self.written: list[str] = []

    def _enter(self, state: ProvisionState) -> None:
        self._logger.D(f"os configure: entering state {state.value}")
        self.state = state
        self.visited_states.append(state)

    def _emit(self, diag: Diagnostic) -> None:
        self.diagnostics.append(diag)
        if self._on_diagnostic is not None:
            self._on_diagnostic(diag)

    def run(self, req: OsConfigureRequest) -> OsConfigureResult:
        self.state = None
        self.visited_states = []
        self.diagnostics = []
        self.written = []

        self._enter(ProvisionState.SELECT_TARGET)
        for diag in validate_request(req, self._platform):
            self._emit(diag)
        # read up front so an unreadable profile never leaves a half-written image
        connections = self._read_supplementary_files(req)
        target = self._select_target(req)

        if isinstance(target, ApplicationTarget) and req.device_type:
            self._enter(ProvisionState.VALIDATE_COMPATIBILITY)
            check_device_type_compatibility(
                self._device_types,
                target.device_type,
                req.device_type,
                req.application or target.slug,
            )

        self._enter(ProvisionState.RESOLVE_MANIFEST)
        slug = self._effective_device_type(target, req)
        manifest = self._image_manifests.get_manifest(req.image, slug)
        self._logger.D(f"using device type manifest for {manifest.slug}")

        config_json: dict[str, Any] | None = None
        if req.config_path:
            self._enter(ProvisionState.LOAD_SUPPLIED_CONFIG)
            config_json = _load_config_json(req.config_path)

        self._enter(ProvisionState.RESOLVE_ANSWERS)
        answers = self._resolve_answers(manifest, req, config_json)
        answers[A_DEVICE_TYPE] = slug

        self._enter(ProvisionState.RESOLVE_VERSION)
        answers[A_VERSION] = self._resolve_version(req, manifest)

        self._enter(ProvisionState.ENSURE_CONFIG_DESCRIPTOR)
        if config_json:
            self._logger.D("using the supplied config file verbatim")
            config = config_json
        else:
            config = self._generate_config(target, req, answers)

        self._enter(ProvisionState.WRITE_CONFIG_DESCRIPTOR)
        self._emit(Diagnostic("info", "Configuring operating system image"))
        loc = manifest.config_location
        self._write(req.image, loc.partition, loc.path, json.dumps(config).encode("utf-8"))

        if connections:
            self._enter(ProvisionState.WRITE_SUPPLEMENTARY_FILES)
            self._write_supplementary_files(req.image, connections)

        self._enter(ProvisionState.DONE)
        return OsConfigureResult(target, manifest, answers, config, list(self.written))

    def _select_target(self, req: OsConfigureRequest) -> ProvisioningTarget:
        if req.device:
            return self._targets.get_device(req.device)
        assert req.application is not None
        return self._targets.get_application(req.application)

    @staticmethod
    def _effective_device_type(
        target: ProvisioningTarget,
        req: OsConfigureRequest,
    ) -> str:
        if isinstance(target, DeviceTarget):
            return target.device_type
        return req.device_type or target.device_type

    def _resolve_answers(
        self,
        manifest: DeviceTypeManifest,
        req: OsConfigureRequest,
        config_json: Mapping[str, Any] | None,
    ) -> ResolvedAnswers:
        names = extract_question_names(manifest)
        sources = build_answer_sources(
            manifest,
            req.config_flags,
            config_json,
            req.advanced,
        )
        self._logger.D(f"answer sources: {[s.name for s in sources]}")
        answers = resolve_answers(names, sources)

        unanswered: list[OptionLeaf] = []
        seen: set[str] = set()
        for q in iter_group_questions(manifest):
            if q.name and q.name not in answers and q.name not in seen:
                seen.add(q.name)
                unanswered.append(q)

        if unanswered:
            self._logger.D(f"asking for {[q.name for q in unanswered]}")
            answers = self._prompter.ask(unanswered, answers)

        known = set(names)
        return {k: v for k, v in answers.items() if k in known}

    def _resolve_version(
        self,
        req: OsConfigureRequest,
        manifest: DeviceTypeManifest,
    ) -> str:
        if req.version:
            return normalize_os_version(req.version)

        try:
            version = self._versions.get_os_version(req.image, manifest)
        except (OSError, RuntimeError) as e:
            self._logger.D(f"reading OS version failed: {e}")
            version = None

        if not version:
            raise VersionRequiredError(req.image)
        return version

    def _generate_config(
        self,
        target: ProvisioningTarget,
        req: OsConfigureRequest,
        answers: ResolvedAnswers,
    ) -> dict[str, Any]:
        match target:
            case DeviceTarget():
                return self._descriptors.generate_device_config(
                    target,
                    req.device_api_key,
                    answers,
                )
            case ApplicationTarget():
                return self._descriptors.generate_application_config(
                    target,
                    answers,
                )

    def _write(self, image: str, partition: int, path: str, content: bytes) -> None:
        self._logger.D(f"writing {len(content)} bytes to partition {partition}:{path}")
        try:
            self._writer.write_file(image, partition, path, content)
        except (OSError, RuntimeError) as e:
            raise WriteError(image, partition, path, str(e), self.written) from e
        self.written.append(path)

    @staticmethod
    def _read_supplementary_files(req: OsConfigureRequest) -> list[SupplementaryFile]:
        try:
            return read_supplementary_files(req.system_connections)
        except OSError as e:
            raise UsageError(
                f"cannot read system connection file '{e.filename}': {e.strerror}"
            ) from e

    def _write_supplementary_files(
        self,
        image: str,
        files: Sequence[SupplementaryFile],
    ) -> None:
        for f in files:
            path = posixpath.join(CONNECTIONS_FOLDER, f.name)
            self._write(image, BOOT_PARTITION, path, f.content)
            self._emit(Diagnostic("info", f"Copied system-connection file: {f.name}"))

