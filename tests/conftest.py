import argparse
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import pytest

PROJECT_DIR = Path(__file__).resolve().parent.parent
if str(PROJECT_DIR) not in sys.path:
    sys.path.insert(0, str(PROJECT_DIR))

import tscriptify  # noqa: E402

# Stand-in for `go`: records the driver, echoes canned output, exits with
# FAKE_GO_EXIT and, on success, writes the ConvertToFile target.
FAKE_GO_SOURCE = r'''
import os
import re
import shutil
import sys

driver = sys.argv[-1]
record = os.environ.get("FAKE_GO_RECORD")
if record:
    shutil.copyfile(driver, record)
sys.stdout.write(os.environ.get("FAKE_GO_STDOUT", ""))
sys.stdout.flush()
sys.stderr.write(os.environ.get("FAKE_GO_STDERR", ""))
sys.stderr.flush()
code = int(os.environ.get("FAKE_GO_EXIT", "0"))
if code == 0:
    with open(driver, encoding="utf-8") as handle:
        match = re.search(r'ConvertToFile\("([^"]*)"\)', handle.read())
    if match:
        with open(match.group(1), "w", encoding="utf-8") as out:
            out.write("export interface Generated {}\n")
sys.exit(code)
'''


@dataclass(frozen=True)
class FakeGo:
    command: tuple[str, ...]
    bin_dir: Path
    record: Path

    def recorded_driver(self) -> str:
        return self.record.read_text(encoding="utf-8")


@pytest.fixture
def fake_go(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> FakeGo:
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    script = bin_dir / "go"
    script.write_text(f"#!{sys.executable}\n{FAKE_GO_SOURCE}", encoding="utf-8")
    script.chmod(0o755)

    record = tmp_path / "recorded_driver.go"
    monkeypatch.setenv("FAKE_GO_RECORD", str(record))
    for name in ("FAKE_GO_EXIT", "FAKE_GO_STDOUT", "FAKE_GO_STDERR"):
        monkeypatch.delenv(name, raising=False)

    return FakeGo(
        command=(sys.executable, str(script), "run"),
        bin_dir=bin_dir,
        record=record,
    )


@pytest.fixture
def isolated_tempdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    temp_dir = tmp_path / "tmp"
    temp_dir.mkdir()
    monkeypatch.setattr(tscriptify.tempfile, "tempdir", str(temp_dir))
    return temp_dir


@pytest.fixture
def write_go_file(tmp_path: Path) -> Callable[[str, str], Path]:
    def _write_go_file(relative: str, source: str) -> Path:
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(source, encoding="utf-8")
        return path

    return _write_go_file


@pytest.fixture
def make_args() -> Callable[..., argparse.Namespace]:
    def _make_args(**overrides: object) -> argparse.Namespace:
        base_args: dict[str, object] = {
            "package": "github.com/acme/app/models",
            "target": "web/models.ts",
            "extra_imports": None,
            "extra_commands": None,
            "backup": "",
            "interface": False,
            "imports": None,
            "verbose": False,
            "inputs": [],
        }
        base_args.update(overrides)
        return argparse.Namespace(**base_args)

    return _make_args


@pytest.fixture
def make_config() -> Callable[..., tscriptify.GenerateConfig]:
    def _make_config(**overrides: object) -> tscriptify.GenerateConfig:
        base: dict[str, object] = {
            "models_package": "github.com/acme/app/models",
            "target_file": "web/models.ts",
            "inputs": (),
        }
        base.update(overrides)
        return tscriptify.GenerateConfig(**base)

    return _make_config
