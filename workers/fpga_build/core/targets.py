"""
Targets — artifact kinds, fully composed target specs and invocations.
"""
from __future__ import annotations

import shlex
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Sequence, Tuple


class TargetKind(str, Enum):
    """The four artifact kinds built from the single source unit."""
    EMULATOR = "emulator"
    REPORT = "report"
    SIMULATOR = "simulator"
    HARDWARE = "hardware"


class Stage(str, Enum):
    """One toolchain invocation within a target build."""
    COMPILE = "compile"
    LINK = "link"
    EARLY_LINK = "early_link"


# Graph order; also the order targets are built in.
TARGET_ORDER: Tuple[TargetKind, ...] = (
    TargetKind.EMULATOR,
    TargetKind.REPORT,
    TargetKind.SIMULATOR,
    TargetKind.HARDWARE,
)

_ARTIFACT_SUFFIX = {
    TargetKind.EMULATOR: ".fpga_emu",
    TargetKind.REPORT: "_report.a",
    TargetKind.SIMULATOR: ".fpga_sim",
    TargetKind.HARDWARE: ".fpga",
}


def artifact_name(project_name: str, kind: TargetKind) -> str:
    """mvdr_beamforming + HARDWARE -> mvdr_beamforming.fpga"""
    return f"{project_name}{_ARTIFACT_SUFFIX[kind]}"


@dataclass(frozen=True)
class Invocation:
    """A single toolchain command line."""
    stage: Stage
    argv: Tuple[str, ...]

    @property
    def command(self) -> str:
        return shlex.join(self.argv)


@dataclass(frozen=True)
class TargetSpec:
    """
    Everything needed to build one artifact.

    Flag sequences are tuples so a spec can be handed around freely
    without one target's composition leaking into another.
    """
    kind: TargetKind
    compile_flags: Tuple[str, ...]
    link_flags: Tuple[str, ...]
    invocation_count: int
    output_path: str
    cxx_flags: Tuple[str, ...] = ()

    @property
    def object_path(self) -> str:
        """Intermediate object for two-stage builds (obj/<artifact>.o)."""
        output = Path(self.output_path)
        return str(output.parent / "obj" / f"{output.name}.o")

    def invocations(self, source: str, toolchain: Sequence[str]) -> List[Invocation]:
        """
        Toolchain command lines for this target, in execution order.

        Two-stage targets compile the source to an object first and then
        run the FPGA backend at link time.  The report target does both in
        one early-link invocation that stops before full synthesis.
        """
        tool = tuple(toolchain)
        if self.invocation_count == 1:
            return [Invocation(
                stage=Stage.EARLY_LINK,
                argv=tool + self.cxx_flags + self.compile_flags + self.link_flags
                + (source, "-o", self.output_path),
            )]
        obj = self.object_path
        return [
            Invocation(
                stage=Stage.COMPILE,
                argv=tool + self.cxx_flags + self.compile_flags
                + ("-c", source, "-o", obj),
            ),
            Invocation(
                stage=Stage.LINK,
                argv=tool + self.link_flags + (obj, "-o", self.output_path),
            ),
        ]
