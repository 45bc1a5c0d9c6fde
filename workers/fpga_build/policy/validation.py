"""
Validation — opt-in strict checks on resolved build parameters.

The default build passes malformed or conflicting values straight to the
toolchain and lets its own diagnostics decide.  Strict mode runs these
checks after resolution and reports every offending key at once.

Policy rules never import core/.
"""
from dataclasses import dataclass
from enum import Enum, unique
from typing import Any, List, Optional


@unique
class ConfigurationReason(str, Enum):
    NOT_AN_INTEGER = "NOT_AN_INTEGER"
    NOT_POSITIVE = "NOT_POSITIVE"
    EMPTY_BOARD = "EMPTY_BOARD"
    UNPARSABLE_FLAGS = "UNPARSABLE_FLAGS"
    NOT_A_SWITCH = "NOT_A_SWITCH"


@unique
class ConflictReason(str, Enum):
    SENSOR_SIZE_CONFLICT = "SENSOR_SIZE_CONFLICT"


# CMake truthiness.  Anything else that is not a number is false in CMake
# but almost certainly a typo.
SWITCH_FALSE = frozenset({"", "0", "OFF", "NO", "FALSE", "N", "IGNORE", "NOTFOUND"})
SWITCH_TRUE = frozenset({"1", "ON", "YES", "TRUE", "Y"})


def is_switch_token(raw: Any) -> bool:
    """True when *raw* is a value CMake recognizes as a boolean."""
    if raw is None or isinstance(raw, (bool, int, float)):
        return True
    text = str(raw).strip().upper()
    if text in SWITCH_TRUE or text in SWITCH_FALSE or text.endswith("-NOTFOUND"):
        return True
    try:
        float(text)
    except ValueError:
        return False
    return True


@dataclass(frozen=True)
class ConfigurationError:
    """A single offending override (key + the raw value it was given)."""

    key: str
    raw_value: Any
    reason: ConfigurationReason
    message: str = ""

    def __str__(self) -> str:
        return f"{self.key}={self.raw_value!r}: {self.reason.value} {self.message}".rstrip()


@dataclass(frozen=True)
class ConflictError:
    """Two overrides that cannot both be honoured."""

    keys: tuple
    reason: ConflictReason
    message: str = ""

    def __str__(self) -> str:
        return f"{' + '.join(self.keys)}: {self.reason.value} {self.message}".rstrip()


class InvalidConfiguration(ValueError):
    """Raised by strict resolution; carries every issue found."""

    def __init__(self, issues: List[Any]):
        self.issues = list(issues)
        lines = "\n".join(f"  - {issue}" for issue in self.issues)
        super().__init__(f"{len(self.issues)} configuration problem(s):\n{lines}")


def _check_positive_int(key: str, raw: Any) -> Optional[ConfigurationError]:
    if raw is None:
        return None
    if isinstance(raw, bool):
        return ConfigurationError(key, raw, ConfigurationReason.NOT_AN_INTEGER)
    text = str(raw).strip()
    if text == "":
        return None
    try:
        value = int(text)
    except ValueError:
        return ConfigurationError(
            key, raw, ConfigurationReason.NOT_AN_INTEGER,
            "expected a positive integer",
        )
    if value <= 0:
        return ConfigurationError(
            key, raw, ConfigurationReason.NOT_POSITIVE,
            "value would be dropped from the build flags",
        )
    return None


def validate_overrides(
    raw: dict,
    large_sensor_array: bool,
    num_sensors: Any,
    extra_flags_error: Optional[str] = None,
) -> List[Any]:
    """
    Evaluate raw overrides for strict mode.

    *raw* maps canonical parameter names to the raw values the user gave.
    Returns a list of ConfigurationError / ConflictError records; an empty
    list means the configuration is clean.
    """
    issues: List[Any] = []

    if "board_id" in raw and str(raw["board_id"]).strip() == "":
        issues.append(ConfigurationError(
            "board_id", raw["board_id"], ConfigurationReason.EMPTY_BOARD,
            "the default board would be used instead",
        ))

    for key in ("profiling_enabled", "large_sensor_array"):
        if key in raw and not is_switch_token(raw[key]):
            issues.append(ConfigurationError(
                key, raw[key], ConfigurationReason.NOT_A_SWITCH,
                "expected ON/OFF, YES/NO, TRUE/FALSE or 1/0",
            ))

    for key in ("num_sensors", "qrd_min_iterations"):
        if key in raw:
            err = _check_positive_int(key, raw[key])
            if err is not None:
                issues.append(err)

    if extra_flags_error is not None:
        issues.append(ConfigurationError(
            "extra_hardware_flags", raw.get("extra_hardware_flags"),
            ConfigurationReason.UNPARSABLE_FLAGS, extra_flags_error,
        ))

    if large_sensor_array and num_sensors is not None:
        issues.append(ConflictError(
            ("large_sensor_array", "num_sensors"),
            ConflictReason.SENSOR_SIZE_CONFLICT,
            "both select the sensor array size",
        ))

    return issues
