"""pytest plugin with the fixtures shared by the whole suite.

Loaded through ``-p tests.fixtures`` (see pyproject.toml).
"""

from contextlib import redirect_stderr, redirect_stdout
from dataclasses import dataclass
import io
import json
import os
import pathlib
from typing import Any

import pytest

from fleetprov.cli.main import main as fleetprov_main
from fleetprov.config import GlobalConfig
from fleetprov.log import FleetprovConsoleLogger, FleetprovLogger
from fleetprov.utils.global_mode import GlobalMode

FIXTURES_DIR = pathlib.Path(__file__).parent


class FleetprovFileFixtureFactory:
    """Gives access to the data files stored next to this module."""

    def __init__(self, root: pathlib.Path = FIXTURES_DIR) -> None:
        self.root = root

    def path(self, *frags: str) -> pathlib.Path:
        return self.root.joinpath(*frags)

    def read_bytes(self, *frags: str) -> bytes:
        return self.path(*frags).read_bytes()

    def read_text(self, *frags: str) -> str:
        return self.path(*frags).read_text(encoding="utf-8")

    def load_json(self, *frags: str) -> Any:
        return json.loads(self.read_bytes(*frags))


@pytest.fixture
def fleetprov_file() -> FleetprovFileFixtureFactory:
    return FleetprovFileFixtureFactory()


@pytest.fixture
def mock_gm() -> GlobalMode:
    return GlobalMode()


@pytest.fixture
def fleetprov_logger(mock_gm: GlobalMode) -> FleetprovLogger:
    return FleetprovConsoleLogger(mock_gm)


@dataclass
class CLIRunResult:
    exit_code: int
    stdout: str
    stderr: str


@dataclass
class IntegrationTestHarness:
    """Runs the CLI in-process, the way the ``fleetprov`` script would."""

    env: dict[str, str]
    config_dir: pathlib.Path

    def __call__(self, *args: str) -> CLIRunResult:
        argv = ["fleetprov", *args]
        out, err = io.StringIO(), io.StringIO()

        # anything writing to sys.stdout directly ends up in `out` too
        with redirect_stdout(out), redirect_stderr(err):
            gm = GlobalMode.from_env(self.env, argv)
            logger = FleetprovConsoleLogger(gm, stdout=out, stderr=err)
            exit_code = fleetprov_main(gm, GlobalConfig.load_from_config(gm, logger), argv)

        return CLIRunResult(exit_code, out.getvalue(), err.getvalue())

    def write_config(self, content: str) -> pathlib.Path:
        path = self.config_dir / "fleetprov" / "config.toml"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path


@pytest.fixture
def fleetprov_cli_runner(
    tmp_path: pathlib.Path,
    monkeypatch: pytest.MonkeyPatch,
) -> IntegrationTestHarness:
    home = tmp_path / "home"
    config_dir = tmp_path / "xdg-config"
    home.mkdir()
    config_dir.mkdir()

    # keep the developer's own settings out of the way
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_dir))
    monkeypatch.setenv("XDG_CONFIG_DIRS", str(tmp_path / "xdg-system"))
    for var in ("FLEETPROV_API_TOKEN", "FLEETPROV_DEBUG", "_ARGCOMPLETE"):
        monkeypatch.delenv(var, raising=False)

    return IntegrationTestHarness(dict(os.environ), config_dir)
