#!/usr/bin/env python3
"""
Build standalone minipam executable
Usage: python3 build.py [--version VERSION]

Environment Variables:
  XDG_CONFIG_HOME: Where to look for minipam/config.yaml to bundle
"""

import os
import sys

import PyInstaller.__main__

SCRIPT = "minipam.py"
NAME = "minipam"


def parse_version(argv):
    if len(argv) > 1 and argv[1] == "--version":
        if len(argv) > 2:
            return argv[2]
        print("❌ Error: --version requires a version string")
        sys.exit(1)
    elif len(argv) > 1:
        print(f"❌ Unknown argument: {argv[1]}")
        print("Usage: python3 build.py [--version VERSION]")
        sys.exit(1)
    return None


def find_config():
    """config.yaml to bundle, if any (current dir, then XDG location)"""
    if os.path.exists("config.yaml"):
        return "config.yaml"
    xdg_config = os.environ.get("XDG_CONFIG_HOME", os.path.expanduser("~/.config"))
    xdg_config_file = os.path.join(xdg_config, "minipam", "config.yaml")
    if os.path.exists(xdg_config_file):
        return xdg_config_file
    return None


def pyinstaller_args(output_name, config_file=None):
    args = [
        SCRIPT,
        "--onefile",  # Single EXE file
        "--name=" + output_name,
        "--hidden-import=sqlalchemy.dialects.sqlite",
        "--hidden-import=sqlalchemy.dialects.postgresql",
        "--hidden-import=rich.logging",
        "--hidden-import=yaml",
        "--collect-all=sqlalchemy",
        "--collect-all=rich",
        "--clean",  # Clean cache
        "--noconfirm",  # Overwrite output dir
    ]
    if config_file:
        args.insert(3, f"--add-data={config_file}:.")
    return args


def main(argv):
    version = parse_version(argv)

    if not os.path.exists(SCRIPT):
        print(f"❌ Error: {SCRIPT} not found!")
        sys.exit(1)

    config_file = find_config()
    output_name = NAME if version is None else f"{NAME}-v{version}"

    print(f"🔨 Building standalone executable for {SCRIPT}...")
    print(f"📦 Version: {version if version else 'latest'}")
    print(f"⚙️  Config: {config_file if config_file else 'none (defaults)'}")
    print(f"📁 Output: dist/{output_name}")

    PyInstaller.__main__.run(pyinstaller_args(output_name, config_file))

    print(f"✅ Build complete! Executable: dist/{output_name}")


if __name__ == "__main__":
    main(sys.argv)
