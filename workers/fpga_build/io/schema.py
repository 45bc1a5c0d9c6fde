"""
BuildReceipt Schema — one JSON receipt per build invocation.

Records exactly which parameters were resolved, which command lines ran
for each target, and what the toolchain returned.  Toolchain diagnostics
are referenced verbatim, never reinterpreted.
"""
from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

from pydantic import BaseModel, Field

from fpga_build import PACKAGE_NAME, SCHEMA_VERSION, __version__


# =============================================================================
# Enums
# =============================================================================

class PhaseStatus(str, Enum):
    """Status of a single toolchain invocation."""
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    TIMEOUT = "TIMEOUT"
    SKIPPED = "SKIPPED"


class TargetStatus(str, Enum):
    """Final status of one target."""
    BUILT = "BUILT"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"
    PLANNED = "PLANNED"  # dry run


# =============================================================================
# Identity
# =============================================================================

class SourceIdentity(BaseModel):
    path: str
    sha256: Optional[str] = None
    size_bytes: Optional[int] = None


class ToolchainIdentity(BaseModel):
    """Immutable record of the toolchain and host."""
    command: List[str]
    version: str = "unknown"  # first line of --version
    os_release: str = "unknown"
    arch: str = "unknown"


class ParametersRecord(BaseModel):
    """Resolved BuildParameters as recorded in the receipt."""
    board_id: str
    board_from_default: bool
    usm_enabled: bool
    host_error_handling: bool
    profiling_enabled: bool
    large_sensor_array: bool
    num_sensors: Optional[Union[int, str]] = None
    qrd_min_iterations: Optional[Union[int, str]] = None
    extra_hardware_flags: str = ""


# =============================================================================
# Per-target results
# =============================================================================

class StageResult(BaseModel):
    """Result of one toolchain invocation (compile / link / early_link)."""
    stage: str
    argv: List[str]
    exit_code: int = -1
    stdout: str = ""
    stderr: str = ""
    stdout_path_rel: Optional[str] = None
    stderr_path_rel: Optional[str] = None
    duration_ms: int = 0
    status: PhaseStatus = PhaseStatus.SKIPPED


class ArtifactMeta(BaseModel):
    path_rel: str
    sha256: str
    size_bytes: int


class TargetResult(BaseModel):
    target: str
    status: TargetStatus = TargetStatus.FAILED
    output_path: str
    compile_flags: List[str] = Field(default_factory=list)
    link_flags: List[str] = Field(default_factory=list)
    invocation_count: int
    states: List[str] = Field(default_factory=list)
    stages: List[StageResult] = Field(default_factory=list)
    artifact: Optional[ArtifactMeta] = None


# =============================================================================
# Top-level BuildReceipt
# =============================================================================

class BuilderInfo(BaseModel):
    name: str = PACKAGE_NAME
    version: str = __version__
    schema_version: str = SCHEMA_VERSION
    profile_id: str


class JobInfo(BaseModel):
    created_at: str  # ISO 8601
    finished_at: Optional[str] = None
    status: str = "BUILDING"  # BUILDING, SUCCESS, PARTIAL, FAILED, PLANNED
    requested_targets: List[str] = Field(default_factory=list)
    selected_targets: List[str] = Field(default_factory=list)
    dry_run: bool = False
    fail_fast: bool = False


class BuildReceipt(BaseModel):
    """
    Single authoritative receipt for a build invocation.

    One file per build directory: build_receipt.json
    """
    builder: BuilderInfo
    job: JobInfo
    source: SourceIdentity
    toolchain: ToolchainIdentity
    parameters: ParametersRecord
    targets: List[TargetResult] = Field(default_factory=list)

    def compute_status(self) -> str:
        """Derive job status from target results."""
        if self.job.dry_run:
            return "PLANNED"
        if not self.targets:
            return "FAILED"
        statuses = [t.status for t in self.targets]
        if all(s == TargetStatus.BUILT for s in statuses):
            return "SUCCESS"
        if any(s == TargetStatus.BUILT for s in statuses):
            return "PARTIAL"
        return "FAILED"


# =============================================================================
# Helpers
# =============================================================================

def hash_file(path: Path) -> str:
    """SHA-256 of a file."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            h.update(chunk)
    return h.hexdigest()


def now_iso() -> str:
    """Current UTC time as ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()
