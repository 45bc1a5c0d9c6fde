"""
Flags — BuildParameters × TargetKind → ordered compile / link flag tuples.

Pure functions only.  Identical inputs always give identical token
sequences, so the rendered command line can serve as a cache key.

Override contract
-----------------
The toolchain resolves conflicting options by taking the last one.  A
FlagList therefore only grows at the end, and user-supplied hardware flags
are always appended last so they take precedence over anything composed
here.
"""
from __future__ import annotations

import shlex
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Sequence, Tuple

from fpga_build.core.targets import TARGET_ORDER, TargetKind, TargetSpec, artifact_name
from fpga_build.policy.profile import Profile

if TYPE_CHECKING:
    from fpga_build.core.resolver import BuildParameters


class FlagList:
    """Append-only ordered token list; later tokens override earlier ones."""

    def __init__(self, tokens: Iterable[str] = ()):
        self._tokens: List[str] = list(tokens)

    def add(self, token: str, when: bool = True) -> "FlagList":
        if when:
            self._tokens.append(token)
        return self

    def extend(self, tokens: Iterable[str]) -> "FlagList":
        self._tokens.extend(tokens)
        return self

    def freeze(self) -> Tuple[str, ...]:
        return tuple(self._tokens)

    def __len__(self) -> int:
        return len(self._tokens)

    def __str__(self) -> str:
        return " ".join(self._tokens)


def split_flags(text: str) -> Tuple[List[str], Optional[str]]:
    """
    Split a free-form flag string into tokens with shell quoting rules.

    Returns (tokens, error).  Unbalanced quoting falls back to plain
    whitespace splitting so composition never fails; the error text is
    returned for strict validation.
    """
    if not text:
        return [], None
    try:
        return shlex.split(text), None
    except ValueError as e:
        return text.split(), str(e)


def _define(name: str, value) -> str:
    return f"-D{name}={value}"


def _sizing_tokens(params: "BuildParameters", profile: Profile) -> List[str]:
    """USM + problem-size defines shared by compile and hardware link flags."""
    tokens = FlagList()
    tokens.add(profile.usm_define, params.usm_enabled)
    tokens.add(profile.large_sensor_array_define, params.large_sensor_array)
    if params.num_sensors is not None:
        tokens.add(_define(profile.num_sensors_define, params.num_sensors))
    if params.qrd_min_iterations is not None:
        tokens.add(_define(profile.qrd_min_iterations_define, params.qrd_min_iterations))
    return list(tokens.freeze())


def common_compile_flags(params: "BuildParameters", profile: Profile) -> Tuple[str, ...]:
    """Compile tokens shared by every target kind."""
    flags = FlagList([profile.device_flag, profile.bracket_depth_flag])
    flags.extend(_sizing_tokens(params, profile))
    return flags.freeze()


def synthesis_link_flags(params: "BuildParameters", profile: Profile) -> Tuple[str, ...]:
    """
    FPGA backend tokens that steer real hardware synthesis.

    Shared by the hardware target and the report's early link.  User
    hardware flags are not included here; callers append them last.
    """
    flags = FlagList([
        profile.device_flag,
        profile.hardware_flag,
        profile.bracket_depth_flag,
    ])
    flags.add(profile.profile_flag, params.profiling_enabled)
    flags.extend(_sizing_tokens(params, profile))
    flags.add(profile.parallel_flag)
    flags.add(profile.board_flag(params.board_id))
    return flags.freeze()


def _compile_flags(params: "BuildParameters", kind: TargetKind, profile: Profile) -> Tuple[str, ...]:
    flags = FlagList()
    # The simulator's host code never carried the host error-handling flag.
    flags.add(
        profile.host_error_flag,
        params.host_error_handling and kind != TargetKind.SIMULATOR,
    )
    flags.extend(common_compile_flags(params, profile))
    flags.add(profile.emulator_define, kind == TargetKind.EMULATOR)
    return flags.freeze()


def _link_flags(
    params: "BuildParameters",
    kind: TargetKind,
    profile: Profile,
    output_path: str,
) -> Tuple[str, ...]:
    flags = FlagList()
    if kind == TargetKind.EMULATOR:
        flags.add(profile.device_flag)
        flags.add(profile.usm_define, params.usm_enabled)
    elif kind == TargetKind.SIMULATOR:
        flags.extend([
            profile.device_flag,
            profile.bracket_depth_flag,
            profile.simulation_flag,
            profile.waveform_flag,
        ])
    elif kind == TargetKind.HARDWARE:
        flags.extend(synthesis_link_flags(params, profile))
        flags.add(f"-reuse-exe={output_path}")
        flags.extend(split_flags(params.extra_hardware_flags)[0])
    elif kind == TargetKind.REPORT:
        flags.extend(synthesis_link_flags(params, profile))
        flags.add(profile.early_link_flag)
        flags.extend(split_flags(params.extra_hardware_flags)[0])
    return flags.freeze()


def compose_target(
    params: "BuildParameters",
    kind: TargetKind,
    profile: Optional[Profile] = None,
    build_dir: str = ".",
    cxx_flags: Sequence[str] = (),
) -> TargetSpec:
    """Compose the complete TargetSpec for one artifact kind."""
    if profile is None:
        profile = Profile.mvdr()
    output_path = str(Path(build_dir) / artifact_name(profile.project_name, kind))
    return TargetSpec(
        kind=kind,
        compile_flags=_compile_flags(params, kind, profile),
        link_flags=_link_flags(params, kind, profile, output_path),
        invocation_count=1 if kind == TargetKind.REPORT else 2,
        output_path=output_path,
        cxx_flags=tuple(cxx_flags),
    )


def compose_all(
    params: "BuildParameters",
    kinds: Iterable[TargetKind] = TARGET_ORDER,
    profile: Optional[Profile] = None,
    build_dir: str = ".",
    cxx_flags: Sequence[str] = (),
) -> Dict[TargetKind, TargetSpec]:
    """Compose specs for several kinds; each is built independently."""
    return {
        kind: compose_target(params, kind, profile, build_dir, cxx_flags)
        for kind in kinds
    }
