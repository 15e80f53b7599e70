import json
import pathlib
from typing import Any, Sequence

import pytest

from fleetprov.log import FleetprovLogger
from fleetprov.osimage import configure
from fleetprov.osimage.answers import ResolvedAnswers
from fleetprov.osimage.configure import (
    CONNECTIONS_FOLDER,
    Diagnostic,
    OsConfigureRequest,
    OsImageConfigurator,
    ProvisionState,
    normalize_os_version,
    validate_request,
)
from fleetprov.osimage.errors import (
    CompatibilityError,
    ManifestError,
    RetrievalError,
    UsageError,
    VersionRequiredError,
    WriteError,
)
from fleetprov.osimage.manifest import DeviceTypeManifest, OptionLeaf
from fleetprov.osimage.target import ApplicationTarget, DeviceTarget

from tests.fixtures import FleetprovFileFixtureFactory

IMAGE = "/tmp/rpi3.img"


class FakeFleet:
    def __init__(self, manifests: dict[str, DeviceTypeManifest]) -> None:
        self.manifests = manifests
        self.calls: list[str] = []

    def get_device(self, uuid: str) -> DeviceTarget:
        self.calls.append(f"device:{uuid}")
        return DeviceTarget(uuid, 42, "raspberrypi3", 7, "MyApp")

    def get_application(self, name_or_slug: str) -> ApplicationTarget:
        self.calls.append(f"application:{name_or_slug}")
        return ApplicationTarget("gh_user/myapp", 7, "MyApp", "raspberry-pi2")

    def get_device_type_manifest(self, slug: str) -> DeviceTypeManifest:
        self.calls.append(f"device-type:{slug}")
        try:
            return self.manifests[slug]
        except KeyError:
            raise ManifestError(f"unknown device type '{slug}'")


class FakeImageManifests:
    def __init__(self, manifest: DeviceTypeManifest) -> None:
        self.manifest = manifest
        self.calls: list[tuple[str, str]] = []

    def get_manifest(self, image_path: str, slug: str) -> DeviceTypeManifest:
        self.calls.append((image_path, slug))
        return self.manifest


class FakeVersions:
    def __init__(self, version: str | None) -> None:
        self.version = version

    def get_os_version(self, image_path: str, manifest: DeviceTypeManifest) -> str | None:
        return self.version


class FakePrompter:
    def __init__(self, answers: ResolvedAnswers | None = None) -> None:
        self.answers = answers or {}
        self.asked: list[str] = []

    def ask(
        self,
        questions: Sequence[OptionLeaf],
        defaults: ResolvedAnswers,
    ) -> ResolvedAnswers:
        result = dict(defaults)
        for q in questions:
            assert q.name is not None
            self.asked.append(q.name)
            if q.name in self.answers:
                result[q.name] = self.answers[q.name]
        return result


class FakeDescriptors:
    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []

    def generate_device_config(
        self,
        device: DeviceTarget,
        api_key: str | None,
        answers: ResolvedAnswers,
    ) -> dict[str, Any]:
        self.calls.append(("device", api_key))
        return {"uuid": device.uuid, "deviceApiKey": api_key or "generated", **answers}

    def generate_application_config(
        self,
        application: ApplicationTarget,
        answers: ResolvedAnswers,
    ) -> dict[str, Any]:
        self.calls.append(("application", application.id))
        return {"applicationId": application.id, "apiKey": "prov-key", **answers}


class FakeWriter:
    def __init__(self, fail_on: str | None = None) -> None:
        self.fail_on = fail_on
        self.files: list[tuple[int, str, bytes]] = []

    def write_file(self, image_path: str, partition: int, path: str, content: bytes) -> None:
        if path == self.fail_on:
            raise RuntimeError("mcopy failed: disk full")
        self.files.append((partition, path, content))


class Harness:
    def __init__(
        self,
        logger: FleetprovLogger,
        manifests: dict[str, DeviceTypeManifest],
        image_manifest: DeviceTypeManifest,
        version: str | None = "2.32.0+rev1",
        prompter_answers: ResolvedAnswers | None = None,
        fail_on: str | None = None,
        platform: str = "linux",
    ) -> None:
        self.fleet = FakeFleet(manifests)
        self.image_manifests = FakeImageManifests(image_manifest)
        self.prompter = FakePrompter(prompter_answers)
        self.descriptors = FakeDescriptors()
        self.writer = FakeWriter(fail_on)
        self.events: list[Diagnostic] = []
        self.configurator = OsImageConfigurator(
            logger,
            targets=self.fleet,
            device_types=self.fleet,
            image_manifests=self.image_manifests,
            versions=FakeVersions(version),
            prompter=self.prompter,
            descriptors=self.descriptors,
            writer=self.writer,
            platform=platform,
            on_diagnostic=self.events.append,
        )

    def written_config(self) -> Any:
        partition, path, content = self.writer.files[0]
        assert (partition, path) == (1, "/config.json")
        return json.loads(content)


@pytest.fixture
def rpi3(fleetprov_file: FleetprovFileFixtureFactory) -> DeviceTypeManifest:
    return DeviceTypeManifest.from_dict(
        fleetprov_file.load_json("manifests", "raspberrypi3.json")
    )


@pytest.fixture
def rpi2() -> DeviceTypeManifest:
    return DeviceTypeManifest.from_dict(
        {"slug": "raspberry-pi2", "arch": "armv7hf", "options": []}
    )


@pytest.fixture
def nuc(fleetprov_file: FleetprovFileFixtureFactory) -> DeviceTypeManifest:
    return DeviceTypeManifest.from_dict(
        fleetprov_file.load_json("manifests", "intel-nuc.json")
    )


@pytest.fixture
def harness(
    fleetprov_logger: FleetprovLogger,
    rpi3: DeviceTypeManifest,
    rpi2: DeviceTypeManifest,
) -> Harness:
    return Harness(
        fleetprov_logger,
        {"raspberrypi3": rpi3, "raspberry-pi2": rpi2},
        rpi3,
        prompter_answers={"network": "ethernet"},
    )


def test_both_targets_rejected_before_any_call(harness: Harness) -> None:
    req = OsConfigureRequest(IMAGE, device="7cf02a6", application="MyApp")
    with pytest.raises(UsageError) as exc_info:
        harness.configurator.run(req)

    assert exc_info.value.exit_code == 1
    assert harness.fleet.calls == []
    assert harness.writer.files == []
    assert harness.configurator.visited_states == [ProvisionState.SELECT_TARGET]


def test_validate_request() -> None:
    with pytest.raises(UsageError):
        validate_request(OsConfigureRequest(IMAGE), "linux")

    with pytest.raises(UsageError, match="--device-type"):
        validate_request(
            OsConfigureRequest(IMAGE, device="7cf02a6", device_type="raspberrypi3"),
            "linux",
        )

    with pytest.raises(UsageError, match="unsupported platform"):
        validate_request(OsConfigureRequest(IMAGE, device="7cf02a6"), "win32")

    with pytest.raises(UsageError, match="does not exist"):
        validate_request(
            OsConfigureRequest(
                IMAGE,
                device="7cf02a6",
                system_connections=["/nonexistent/eth0.nmconnection"],
            ),
            "linux",
        )

    assert validate_request(OsConfigureRequest(IMAGE, device="7cf02a6"), "darwin") == []

    (diag,) = validate_request(
        OsConfigureRequest(IMAGE, device="7cf02a6", device_api_key="k"),
        "linux",
    )
    assert diag.level == "warn"
    assert "--device-api-key" in diag.message


def test_incompatible_override_before_manifest_fetch(
    fleetprov_logger: FleetprovLogger,
    rpi2: DeviceTypeManifest,
    nuc: DeviceTypeManifest,
) -> None:
    h = Harness(fleetprov_logger, {"raspberry-pi2": rpi2, "intel-nuc": nuc}, nuc)
    req = OsConfigureRequest(IMAGE, application="MyApp", device_type="intel-nuc")

    with pytest.raises(CompatibilityError):
        h.configurator.run(req)

    assert h.image_manifests.calls == []
    assert h.writer.files == []
    assert h.configurator.state == ProvisionState.VALIDATE_COMPATIBILITY


def test_compatible_override(harness: Harness) -> None:
    req = OsConfigureRequest(IMAGE, application="MyApp", device_type="raspberrypi3")
    result = harness.configurator.run(req)

    assert harness.fleet.calls == [
        "application:MyApp",
        "device-type:raspberry-pi2",
        "device-type:raspberrypi3",
    ]
    assert harness.image_manifests.calls == [(IMAGE, "raspberrypi3")]
    assert result.answers["deviceType"] == "raspberrypi3"


def test_application_happy_path(harness: Harness) -> None:
    req = OsConfigureRequest(IMAGE, application="MyApp")
    result = harness.configurator.run(req)

    assert harness.configurator.state == ProvisionState.DONE
    assert harness.configurator.visited_states == [
        ProvisionState.SELECT_TARGET,
        ProvisionState.RESOLVE_MANIFEST,
        ProvisionState.RESOLVE_ANSWERS,
        ProvisionState.RESOLVE_VERSION,
        ProvisionState.ENSURE_CONFIG_DESCRIPTOR,
        ProvisionState.WRITE_CONFIG_DESCRIPTOR,
        ProvisionState.DONE,
    ]

    # the application's own device type applies without an override
    assert harness.image_manifests.calls == [(IMAGE, "raspberry-pi2")]

    # only the non-advanced questions left unanswered are asked
    assert harness.prompter.asked == ["network", "wifiSsid", "wifiKey"]
    assert result.answers == {
        "network": "ethernet",
        "appUpdatePollInterval": 10,
        "deviceType": "raspberry-pi2",
        "version": "2.32.0+rev1",
    }

    assert harness.descriptors.calls == [("application", 7)]
    cfg = harness.written_config()
    assert cfg["apiKey"] == "prov-key"
    assert cfg["deviceType"] == "raspberry-pi2"
    assert result.written == ["/config.json"]
    assert [d.message for d in harness.events] == ["Configuring operating system image"]


def test_device_target(harness: Harness) -> None:
    req = OsConfigureRequest(
        IMAGE,
        device="7cf02a6",
        device_api_key="custom-key",
        config_flags={"config-network": "ethernet"},
        advanced=True,
        version="v2.44.0",
    )
    result = harness.configurator.run(req)

    assert harness.fleet.calls == ["device:7cf02a6"]
    assert harness.image_manifests.calls == [(IMAGE, "raspberrypi3")]
    # advanced mode asks the advanced question too
    assert harness.prompter.asked == ["wifiSsid", "wifiKey", "appUpdatePollInterval"]
    assert result.answers["deviceType"] == "raspberrypi3"
    assert result.answers["version"] == "2.44.0"
    assert harness.descriptors.calls == [("device", "custom-key")]

    assert harness.events[0].level == "warn"
    assert "deprecated" in harness.events[0].message
    assert harness.configurator.diagnostics == harness.events


def test_supplied_config_used_verbatim(harness: Harness, tmp_path: pathlib.Path) -> None:
    supplied = {
        "applicationId": 1234,
        "apiKey": "from-file",
        "network": "wifi",
        "wifiSsid": "office",
        "wifiKey": "s3cret",
    }
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps(supplied), encoding="utf-8")

    req = OsConfigureRequest(IMAGE, application="MyApp", config_path=str(config_path))
    result = harness.configurator.run(req)

    assert ProvisionState.LOAD_SUPPLIED_CONFIG in harness.configurator.visited_states
    assert harness.prompter.asked == []
    assert harness.descriptors.calls == []
    assert harness.written_config() == supplied
    assert result.answers["wifiSsid"] == "office"


def test_empty_supplied_config_generates(harness: Harness, tmp_path: pathlib.Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text("{}", encoding="utf-8")

    req = OsConfigureRequest(IMAGE, application="MyApp", config_path=str(config_path))
    harness.configurator.run(req)
    assert harness.descriptors.calls == [("application", 7)]


def test_unreadable_supplied_config(harness: Harness, tmp_path: pathlib.Path) -> None:
    bad = tmp_path / "config.json"
    bad.write_text("{not json", encoding="utf-8")

    with pytest.raises(UsageError, match="not valid JSON"):
        harness.configurator.run(
            OsConfigureRequest(IMAGE, application="MyApp", config_path=str(bad))
        )

    with pytest.raises(UsageError, match="cannot read"):
        harness.configurator.run(
            OsConfigureRequest(
                IMAGE,
                application="MyApp",
                config_path=str(tmp_path / "missing.json"),
            )
        )
    assert harness.writer.files == []


def test_version_required(
    fleetprov_logger: FleetprovLogger,
    rpi3: DeviceTypeManifest,
) -> None:
    h = Harness(fleetprov_logger, {"raspberrypi3": rpi3}, rpi3, version=None)
    with pytest.raises(VersionRequiredError) as exc_info:
        h.configurator.run(
            OsConfigureRequest(IMAGE, device="7cf02a6", config_flags={"config-network": "ethernet"})
        )

    assert isinstance(exc_info.value, RetrievalError)
    assert exc_info.value.exit_code == 3
    assert "--version" in str(exc_info.value)
    assert h.writer.files == []


def test_normalize_os_version() -> None:
    assert normalize_os_version("2.32.0") == "2.32.0"
    assert normalize_os_version("v2.44.0+rev1") == "2.44.0+rev1"
    with pytest.raises(UsageError):
        normalize_os_version("latest")
    with pytest.raises(UsageError):
        normalize_os_version("2.32")


def _make_connections(tmp_path: pathlib.Path) -> list[str]:
    paths = []
    for name in ("eth0.nmconnection", "wifi0.nmconnection"):
        p = tmp_path / name
        p.write_text(f"[connection]\nid={name}\n", encoding="utf-8")
        paths.append(str(p))
    return paths


def test_supplementary_files_written_in_order(
    harness: Harness,
    tmp_path: pathlib.Path,
) -> None:
    req = OsConfigureRequest(
        IMAGE,
        application="MyApp",
        system_connections=_make_connections(tmp_path),
    )
    result = harness.configurator.run(req)

    assert [(p, path) for p, path, _ in harness.writer.files] == [
        (1, "/config.json"),
        (1, f"{CONNECTIONS_FOLDER}/eth0.nmconnection"),
        (1, f"{CONNECTIONS_FOLDER}/wifi0.nmconnection"),
    ]
    assert harness.writer.files[1][2] == b"[connection]\nid=eth0.nmconnection\n"
    assert result.written == [
        "/config.json",
        "/system-connections/eth0.nmconnection",
        "/system-connections/wifi0.nmconnection",
    ]
    assert [d.message for d in harness.events][1:] == [
        "Copied system-connection file: eth0.nmconnection",
        "Copied system-connection file: wifi0.nmconnection",
    ]


def test_supplementary_file_write_failure_is_partial(
    fleetprov_logger: FleetprovLogger,
    rpi3: DeviceTypeManifest,
    rpi2: DeviceTypeManifest,
    tmp_path: pathlib.Path,
) -> None:
    h = Harness(
        fleetprov_logger,
        {"raspberrypi3": rpi3, "raspberry-pi2": rpi2},
        rpi3,
        prompter_answers={"network": "ethernet"},
        fail_on="/system-connections/wifi0.nmconnection",
    )
    req = OsConfigureRequest(
        IMAGE,
        application="MyApp",
        system_connections=_make_connections(tmp_path),
    )

    with pytest.raises(WriteError) as exc_info:
        h.configurator.run(req)

    e = exc_info.value
    assert e.exit_code == 4
    assert e.path == "/system-connections/wifi0.nmconnection"
    assert "eth0" not in str(e)
    assert e.is_partial
    assert e.written == ["/config.json", "/system-connections/eth0.nmconnection"]

    # earlier writes stay in the image
    assert [path for _, path, _ in h.writer.files] == [
        "/config.json",
        "/system-connections/eth0.nmconnection",
    ]
    assert h.configurator.state == ProvisionState.WRITE_SUPPLEMENTARY_FILES


def test_config_write_failure(
    fleetprov_logger: FleetprovLogger,
    rpi3: DeviceTypeManifest,
) -> None:
    h = Harness(
        fleetprov_logger,
        {"raspberrypi3": rpi3},
        rpi3,
        prompter_answers={"network": "ethernet"},
        fail_on="/config.json",
    )
    with pytest.raises(WriteError) as exc_info:
        h.configurator.run(OsConfigureRequest(IMAGE, device="7cf02a6"))

    assert not exc_info.value.is_partial
    assert exc_info.value.partition == 1


class DeletingWriter(FakeWriter):
    """Removes a local file once the config descriptor lands in the image."""

    def __init__(self, victim: pathlib.Path) -> None:
        super().__init__()
        self.victim = victim

    def write_file(self, image_path: str, partition: int, path: str, content: bytes) -> None:
        super().write_file(image_path, partition, path, content)
        if path == "/config.json":
            self.victim.unlink()


def test_connections_read_before_any_write(
    harness: Harness,
    tmp_path: pathlib.Path,
) -> None:
    paths = _make_connections(tmp_path)
    writer = DeletingWriter(pathlib.Path(paths[0]))
    harness.configurator._writer = writer

    result = harness.configurator.run(
        OsConfigureRequest(IMAGE, application="MyApp", system_connections=paths)
    )

    assert not pathlib.Path(paths[0]).exists()
    assert writer.files[1] == (
        1,
        "/system-connections/eth0.nmconnection",
        b"[connection]\nid=eth0.nmconnection\n",
    )
    assert len(result.written) == 3


def test_unreadable_connection_rejected_before_any_write(
    harness: Harness,
    tmp_path: pathlib.Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    paths = _make_connections(tmp_path)

    def _denied(names: Sequence[str]) -> Any:
        raise PermissionError(13, "Permission denied", names[1])

    monkeypatch.setattr(configure, "read_supplementary_files", _denied)

    with pytest.raises(UsageError, match="cannot read system connection file") as exc_info:
        harness.configurator.run(
            OsConfigureRequest(IMAGE, application="MyApp", system_connections=paths)
        )

    assert "wifi0.nmconnection" in str(exc_info.value)

    assert harness.writer.files == []
    assert harness.configurator.written == []
    assert harness.fleet.calls == []


def test_configurator_reuse_starts_fresh(
    harness: Harness,
    tmp_path: pathlib.Path,
) -> None:
    req = OsConfigureRequest(
        IMAGE,
        application="MyApp",
        system_connections=_make_connections(tmp_path),
    )
    harness.configurator.run(req)
    assert len(harness.configurator.written) == 3

    harness.writer.fail_on = "/config.json"
    with pytest.raises(WriteError) as exc_info:
        harness.configurator.run(req)

    assert not exc_info.value.is_partial
    assert exc_info.value.written == []
    assert harness.configurator.written == []
    assert harness.configurator.visited_states[0] == ProvisionState.SELECT_TARGET
    assert harness.configurator.visited_states.count(ProvisionState.SELECT_TARGET) == 1
    assert harness.configurator.state == ProvisionState.WRITE_CONFIG_DESCRIPTOR
    assert [d.message for d in harness.configurator.diagnostics] == [
        "Configuring operating system image",
    ]
