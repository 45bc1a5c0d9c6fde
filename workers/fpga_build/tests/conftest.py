"""
Shared pytest fixtures for fpga_build tests.

Provides a fake FPGA toolchain: a POSIX shell script that records every
invocation, writes whatever file follows "-o", and fails (or hangs) on
request.

Requirements:
  - /bin/sh (tests that run the fake toolchain are skipped on Windows)
"""
import os
import platform
import stat
import textwrap
from pathlib import Path

import pytest

from fpga_build.config import Settings
from fpga_build.core.resolver import resolve_parameters
from fpga_build.policy.profile import Profile

FAKE_TOOLCHAIN = textwrap.dedent("""\
    #!/bin/sh
    echo "$*" >> "$(dirname "$0")/calls.log"
    out=""
    prev=""
    for arg in "$@"; do
      case "$arg" in
        --version) echo "fake-dpcpp 2024.0.0"; exit 0 ;;
        -Xsfail|--fail-compile) echo "error: backend rejected $arg" >&2; exit 3 ;;
        --slow) exec sleep 5 ;;
      esac
      if [ "$prev" = "-o" ]; then out="$arg"; fi
      prev="$arg"
    done
    echo "fake-dpcpp: ok"
    if [ -n "$out" ]; then echo "artifact" > "$out"; fi
    exit 0
""")

MVDR_SOURCE = "int main() { return 0; }\n"


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep FPGA_BUILD_* variables from the host out of the tests."""
    for name in list(os.environ):
        if name.startswith("FPGA_BUILD_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def profile() -> Profile:
    return Profile.mvdr()


@pytest.fixture
def linux_params(profile):
    """Parameters with no overrides on a Linux host."""
    return resolve_parameters({}, profile=profile, host_system="Linux")


@pytest.fixture
def posix_only():
    if platform.system() == "Windows":
        pytest.skip("fake toolchain needs a POSIX shell")


@pytest.fixture
def fake_toolchain(tmp_path, posix_only) -> Path:
    tool_dir = tmp_path / "toolchain"
    tool_dir.mkdir()
    script = tool_dir / "dpcpp"
    script.write_text(FAKE_TOOLCHAIN)
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


@pytest.fixture
def toolchain_calls(fake_toolchain):
    """Callable returning the argument lines the fake toolchain received."""
    log = fake_toolchain.parent / "calls.log"

    def _calls():
        if not log.exists():
            return []
        return [line for line in log.read_text().splitlines() if line != "--version"]

    return _calls


@pytest.fixture
def source_file(tmp_path) -> Path:
    src = tmp_path / "src" / "mvdr_beamforming.cpp"
    src.parent.mkdir()
    src.write_text(MVDR_SOURCE)
    return src


@pytest.fixture
def settings(tmp_path, fake_toolchain, source_file) -> Settings:
    return Settings(
        TOOLCHAIN=str(fake_toolchain),
        SOURCE=str(source_file),
        BUILD_DIR=str(tmp_path / "build"),
    )
