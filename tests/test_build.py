"""Tests for the PyInstaller build script arguments."""
import pytest

pytest.importorskip("PyInstaller")

import build  # noqa: E402


def test_parse_version():
    assert build.parse_version(["build.py"]) is None
    assert build.parse_version(["build.py", "--version", "1.2.3"]) == "1.2.3"


@pytest.mark.parametrize("argv", [["build.py", "--version"], ["build.py", "--fast"]])
def test_parse_version_rejects(argv):
    with pytest.raises(SystemExit):
        build.parse_version(argv)


def test_pyinstaller_args():
    args = build.pyinstaller_args("minipam-v1.0")
    assert args[0] == "minipam.py"
    assert "--onefile" in args
    assert "--name=minipam-v1.0" in args
    assert not any(a.startswith("--add-data") for a in args)


def test_pyinstaller_args_bundle_config():
    args = build.pyinstaller_args("minipam", "config.yaml")
    assert "--add-data=config.yaml:." in args
