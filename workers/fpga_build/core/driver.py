"""
Driver — run a target's toolchain invocations and observe exit status.

Each stage runs only if the previous one succeeded.  Exit code zero means
the stage succeeded; anything else fails the target.  The toolchain's own
stdout / stderr are kept verbatim (receipt + log files) and, when echo is
on, passed straight through to this process's streams.  No retries.
"""
from __future__ import annotations

import logging
import shlex
import subprocess
import sys
import time
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from fpga_build.core.graph import TargetLifecycle, TargetState
from fpga_build.core.targets import Stage, TargetKind, TargetSpec
from fpga_build.io.schema import (
    ArtifactMeta,
    PhaseStatus,
    StageResult,
    TargetResult,
    TargetStatus,
    ToolchainIdentity,
    hash_file,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Toolchain Discovery
# =============================================================================

def _run_quiet(cmd: List[str], timeout: int = 10) -> str:
    """Run a command and return stdout, or "unknown" if it cannot run."""
    try:
        r = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
        return r.stdout.strip() or "unknown"
    except (OSError, subprocess.SubprocessError):
        return "unknown"


def capture_toolchain(toolchain: Sequence[str]) -> ToolchainIdentity:
    """Record toolchain version and host identity for the receipt."""
    version_raw = _run_quiet(list(toolchain) + ["--version"])
    version = version_raw.splitlines()[0] if version_raw else "unknown"

    os_release = "unknown"
    try:
        for line in Path("/etc/os-release").read_text().splitlines():
            if line.startswith("PRETTY_NAME="):
                os_release = line.split("=", 1)[1].strip('"')
                break
    except OSError:
        pass

    return ToolchainIdentity(
        command=list(toolchain),
        version=version,
        os_release=os_release,
        arch=_run_quiet(["uname", "-m"]),
    )


# =============================================================================
# ArtifactDriver
# =============================================================================

_RUNNING_STATE = {
    Stage.COMPILE: TargetState.COMPILING,
    Stage.LINK: TargetState.LINKING,
    Stage.EARLY_LINK: TargetState.COMPILING_LINKING,
}


class ArtifactDriver:
    """Executes the invocations of one TargetSpec at a time."""

    def __init__(
        self,
        toolchain: Sequence[str],
        source: Path,
        build_dir: Path,
        timeout: Optional[int] = None,
        echo: bool = False,
    ):
        """
        Args:
            toolchain: Compiler command (program plus any fixed arguments).
            source: The single source compilation unit.
            build_dir: Root for objects, logs and artifacts.
            timeout: Per-stage timeout in seconds; None waits indefinitely.
            echo: Forward toolchain output to this process's stdout/stderr.
        """
        self.toolchain = list(toolchain)
        self.source = Path(source)
        self.build_dir = Path(build_dir)
        self.timeout = timeout
        self.echo = echo
        self.logs_dir = self.build_dir / "logs"

    def _rel(self, path: Path) -> str:
        try:
            return path.relative_to(self.build_dir).as_posix()
        except ValueError:
            return path.as_posix()

    def _log_files(self, kind: TargetKind, stage: Stage) -> Tuple[Path, Path]:
        """Remove any logs left by an earlier run of this stage; return their paths."""
        stem = f"{kind.value}.{stage.value}"
        stdout_file = self.logs_dir / f"{stem}.stdout"
        stderr_file = self.logs_dir / f"{stem}.stderr"
        stdout_file.unlink(missing_ok=True)
        stderr_file.unlink(missing_ok=True)
        return stdout_file, stderr_file

    def _run_stage(self, kind: TargetKind, stage: Stage, argv: Sequence[str]) -> StageResult:
        logger.info(f"[{kind.value}] {stage.value}: {shlex.join(argv)}")
        stdout_file, stderr_file = self._log_files(kind, stage)

        t0 = time.monotonic()
        stdout_content = ""
        stderr_content = ""
        status = PhaseStatus.FAILED
        try:
            result = subprocess.run(
                list(argv),
                cwd=str(self.build_dir),
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
            exit_code = result.returncode
            stdout_content = result.stdout
            stderr_content = result.stderr
            status = PhaseStatus.SUCCESS if exit_code == 0 else PhaseStatus.FAILED
        except subprocess.TimeoutExpired:
            exit_code = -1
            stderr_content = f"TIMEOUT after {self.timeout}s"
            status = PhaseStatus.TIMEOUT
        except OSError as e:
            exit_code = -1
            stderr_content = str(e)
        duration = int((time.monotonic() - t0) * 1000)

        # Only write log files if they have content
        stdout_rel = None
        stderr_rel = None
        if stdout_content:
            stdout_file.write_text(stdout_content)
            stdout_rel = self._rel(stdout_file)
        if stderr_content:
            stderr_file.write_text(stderr_content)
            stderr_rel = self._rel(stderr_file)

        if self.echo:
            sys.stdout.write(stdout_content)
            sys.stderr.write(stderr_content)

        return StageResult(
            stage=stage.value,
            argv=list(argv),
            exit_code=exit_code,
            stdout=stdout_content,
            stderr=stderr_content,
            stdout_path_rel=stdout_rel,
            stderr_path_rel=stderr_rel,
            duration_ms=duration,
            status=status,
        )

    def build(self, spec: TargetSpec) -> TargetResult:
        """Run every invocation of *spec* in order and report BUILT / FAILED."""
        lifecycle = TargetLifecycle(spec.kind)
        lifecycle.advance(TargetState.REQUESTED)

        self.logs_dir.mkdir(parents=True, exist_ok=True)
        output_path = Path(spec.output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        stages: List[StageResult] = []
        failed = False
        for invocation in spec.invocations(str(self.source), self.toolchain):
            if failed:
                self._log_files(spec.kind, invocation.stage)
                stages.append(StageResult(
                    stage=invocation.stage.value,
                    argv=list(invocation.argv),
                    status=PhaseStatus.SKIPPED,
                ))
                continue

            if invocation.stage == Stage.COMPILE:
                Path(spec.object_path).parent.mkdir(parents=True, exist_ok=True)
            lifecycle.advance(_RUNNING_STATE[invocation.stage])

            stage_result = self._run_stage(spec.kind, invocation.stage, invocation.argv)
            stages.append(stage_result)
            if stage_result.status != PhaseStatus.SUCCESS:
                failed = True
                lifecycle.advance(TargetState.FAILED)

        if not lifecycle.finished:
            lifecycle.advance(TargetState.BUILT)

        artifact: Optional[ArtifactMeta] = None
        if not failed and output_path.is_file():
            artifact = ArtifactMeta(
                path_rel=self._rel(output_path),
                sha256=hash_file(output_path),
                size_bytes=output_path.stat().st_size,
            )

        status = TargetStatus.FAILED if failed else TargetStatus.BUILT
        if failed:
            last = next(s for s in reversed(stages) if s.status != PhaseStatus.SKIPPED)
            logger.error(
                f"[{spec.kind.value}] {last.stage} failed with exit code {last.exit_code}"
            )
        else:
            logger.info(f"[{spec.kind.value}] built {spec.output_path}")

        return TargetResult(
            target=spec.kind.value,
            status=status,
            output_path=spec.output_path,
            compile_flags=list(spec.compile_flags),
            link_flags=list(spec.link_flags),
            invocation_count=spec.invocation_count,
            states=[s.value for s in lifecycle.history],
            stages=stages,
            artifact=artifact,
        )
