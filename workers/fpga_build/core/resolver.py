"""
Resolver — sparse build overrides → immutable BuildParameters.

Runs once per build invocation.  Never fails in the default mode: it only
normalizes values, applies the profile's defaults and derives the flags
that are not user-settable (USM capability, host error handling).
"""
from __future__ import annotations

import logging
import platform
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

from fpga_build.core.flags import split_flags
from fpga_build.policy.profile import Profile, lookup_capabilities
from fpga_build.policy.validation import (
    SWITCH_FALSE,
    SWITCH_TRUE,
    InvalidConfiguration,
    validate_overrides,
)

logger = logging.getLogger(__name__)

NumericOverride = Optional[Union[int, str]]

# Accepted spellings per parameter (lower-cased).  The upper-case names are
# the CMake cache variable names (-DFPGA_BOARD=...).
OVERRIDE_ALIASES: Dict[str, str] = {
    "board_id": "board_id",
    "fpga_board": "board_id",
    "profiling_enabled": "profiling_enabled",
    "profile_hw": "profiling_enabled",
    "large_sensor_array": "large_sensor_array",
    "num_sensors": "num_sensors",
    "qrd_min_iterations": "qrd_min_iterations",
    "extra_hardware_flags": "extra_hardware_flags",
    "user_hardware_flags": "extra_hardware_flags",
}

@dataclass(frozen=True)
class BuildParameters:
    """Fully resolved build configuration.  Constructed once, never mutated."""

    board_id: str
    board_from_default: bool
    usm_enabled: bool
    host_error_handling: bool
    profiling_enabled: bool = False
    large_sensor_array: bool = False
    num_sensors: NumericOverride = None
    qrd_min_iterations: NumericOverride = None
    extra_hardware_flags: str = ""


def parse_switch(raw: Any) -> bool:
    """Boolean override with CMake truthiness (ON/OFF, 1/0, YES/NO ...)."""
    if isinstance(raw, bool):
        return raw
    if raw is None:
        return False
    if isinstance(raw, (int, float)):
        return raw != 0
    text = str(raw).strip().upper()
    if text in SWITCH_TRUE:
        return True
    if text in SWITCH_FALSE or text.endswith("-NOTFOUND"):
        return False
    try:
        return float(text) != 0
    except ValueError:
        return False


def parse_count(raw: Any) -> NumericOverride:
    """
    Optional positive integer override.

    Positive integers are kept, zero / negative / blank values mean
    "not set".  Anything that is not an integer is passed through as the
    raw token so the toolchain's own diagnostics report it.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw if raw > 0 else None
    text = str(raw).strip()
    if text == "":
        return None
    try:
        value = int(text)
    except ValueError:
        return text
    return value if value > 0 else None


def host_needs_error_handling(profile: Profile, host_system: Optional[str] = None) -> bool:
    """True when the build host belongs to the profile's error-handling platform family."""
    system = host_system if host_system is not None else platform.system()
    return system == profile.host_error_platform


def canonicalize_overrides(overrides: Mapping[str, Any]) -> Dict[str, Any]:
    """Map every accepted key spelling to its canonical parameter name."""
    canonical: Dict[str, Any] = {}
    for key, value in overrides.items():
        name = OVERRIDE_ALIASES.get(str(key).strip().lower())
        if name is None:
            logger.warning(f"Ignoring unknown build parameter '{key}'")
            continue
        canonical[name] = value
    return canonical


def resolve_parameters(
    overrides: Optional[Mapping[str, Any]] = None,
    profile: Optional[Profile] = None,
    host_system: Optional[str] = None,
    strict: bool = False,
) -> BuildParameters:
    """
    Resolve raw overrides into BuildParameters.

    Parameters
    ----------
    overrides : mapping, optional
        Raw override values keyed by parameter name (or CMake cache name).
    profile : Profile, optional
        Design profile.  Defaults to Profile.mvdr().
    host_system : str, optional
        Host platform family (``platform.system()`` when omitted).
    strict : bool
        Collect every configuration problem and raise InvalidConfiguration
        instead of passing questionable values through.
    """
    if profile is None:
        profile = Profile.mvdr()
    raw = canonicalize_overrides(overrides or {})

    # ── Board ────────────────────────────────────────────────────────
    board_raw = raw.get("board_id")
    board_id = str(board_raw).strip() if board_raw is not None else ""
    board_from_default = board_id == ""
    if board_from_default:
        board_id = profile.default_board
        description = profile.describe_board(board_id)
        suffix = f" ({description})" if description else ""
        logger.info(
            f"FPGA board was not specified; configuring the design for the "
            f"default board {board_id}{suffix}. Set board_id / FPGA_BOARD to "
            f"select another board."
        )
    else:
        logger.info(f"Configuring the design to run on FPGA board {board_id}")

    # ── Derived capabilities ─────────────────────────────────────────
    usm_enabled = lookup_capabilities(board_id, profile).usm_host_allocations
    if usm_enabled:
        logger.info("USM host allocations are enabled")

    # ── Optional knobs ───────────────────────────────────────────────
    extra_flags = raw.get("extra_hardware_flags")
    extra_flags = "" if extra_flags is None else str(extra_flags).strip()

    params = BuildParameters(
        board_id=board_id,
        board_from_default=board_from_default,
        usm_enabled=usm_enabled,
        host_error_handling=host_needs_error_handling(profile, host_system),
        profiling_enabled=parse_switch(raw.get("profiling_enabled")),
        large_sensor_array=parse_switch(raw.get("large_sensor_array")),
        num_sensors=parse_count(raw.get("num_sensors")),
        qrd_min_iterations=parse_count(raw.get("qrd_min_iterations")),
        extra_hardware_flags=extra_flags,
    )

    if strict:
        _, flags_error = split_flags(extra_flags)
        issues = validate_overrides(
            raw,
            large_sensor_array=params.large_sensor_array,
            num_sensors=params.num_sensors,
            extra_flags_error=flags_error,
        )
        if issues:
            raise InvalidConfiguration(issues)

    return params
