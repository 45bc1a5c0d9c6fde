"""
Build runner — top-level orchestration: overrides → artifacts + receipt.

Resolves parameters once, selects targets from the graph, composes one
TargetSpec per selected target and hands each to the ArtifactDriver.
Targets are independent: a failing target does not stop the others
unless fail_fast is requested.
"""
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from fpga_build.config import Settings
from fpga_build.core.driver import ArtifactDriver, capture_toolchain
from fpga_build.core.flags import compose_all
from fpga_build.core.graph import TargetGraph
from fpga_build.core.resolver import canonicalize_overrides, resolve_parameters
from fpga_build.io.schema import (
    BuilderInfo,
    BuildReceipt,
    JobInfo,
    ParametersRecord,
    PhaseStatus,
    SourceIdentity,
    StageResult,
    TargetResult,
    TargetStatus,
    ToolchainIdentity,
    hash_file,
    now_iso,
)
from fpga_build.io.writer import write_receipt
from fpga_build.policy.profile import Profile

logger = logging.getLogger(__name__)


def merge_overrides(*layers: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Merge override layers; later layers win per canonical parameter."""
    merged: Dict[str, Any] = {}
    for layer in layers:
        if layer:
            merged.update(canonicalize_overrides(layer))
    return merged


def _source_identity(source: Path) -> SourceIdentity:
    if source.is_file():
        return SourceIdentity(
            path=str(source),
            sha256=hash_file(source),
            size_bytes=source.stat().st_size,
        )
    logger.warning(f"Source file not found: {source}")
    return SourceIdentity(path=str(source))


def _planned_result(spec, source: str, toolchain: List[str], status: TargetStatus) -> TargetResult:
    """Result for a target that was not executed (dry run or fail-fast skip)."""
    return TargetResult(
        target=spec.kind.value,
        status=status,
        output_path=spec.output_path,
        compile_flags=list(spec.compile_flags),
        link_flags=list(spec.link_flags),
        invocation_count=spec.invocation_count,
        stages=[
            StageResult(stage=inv.stage.value, argv=list(inv.argv), status=PhaseStatus.SKIPPED)
            for inv in spec.invocations(source, toolchain)
        ],
    )


def run_build(
    overrides: Optional[Mapping[str, Any]] = None,
    targets: Optional[Iterable[str]] = None,
    settings: Optional[Settings] = None,
    profile: Optional[Profile] = None,
    host_system: Optional[str] = None,
    strict: bool = False,
    dry_run: bool = False,
    fail_fast: bool = False,
    echo: bool = False,
) -> BuildReceipt:
    """
    Build the requested targets (or the default aggregate).

    Parameters
    ----------
    overrides : mapping, optional
        Build parameters; these win over values from *settings*.
    targets : iterable of str, optional
        Target, group or artifact names.  Empty selects the default set.
    settings : Settings, optional
        Toolchain, paths and environment-provided parameters.
    profile : Profile, optional
        Design profile.  Defaults to Profile.mvdr().
    strict : bool
        Raise InvalidConfiguration instead of passing bad values through.
    dry_run : bool
        Compose and record invocations without running the toolchain.
    fail_fast : bool
        Stop after the first failed target; the rest are SKIPPED.
    echo : bool
        Forward toolchain output to this process's stdout/stderr.

    Returns
    -------
    BuildReceipt (also written to <build_dir>/build_receipt.json)
    """
    if settings is None:
        settings = Settings()
    if profile is None:
        profile = Profile.mvdr()
    created_at = now_iso()
    requested = list(targets or [])

    # ── Step 1: resolve parameters (once) ────────────────────────────
    params = resolve_parameters(
        merge_overrides(settings.parameter_overrides(), overrides),
        profile=profile,
        host_system=host_system,
        strict=strict,
    )

    # ── Step 2: select targets ───────────────────────────────────────
    graph = TargetGraph(profile)
    selected = graph.select(requested)
    logger.info(f"Selected targets: {', '.join(k.value for k in selected)}")

    build_dir = Path(settings.BUILD_DIR).resolve()
    source = Path(settings.SOURCE or profile.source_file).resolve()
    toolchain = settings.toolchain_command

    if dry_run:
        toolchain_identity = ToolchainIdentity(command=toolchain)
    else:
        toolchain_identity = capture_toolchain(toolchain)

    # ── Step 3: compose + drive each target independently ───────────
    driver = ArtifactDriver(
        toolchain=toolchain,
        source=source,
        build_dir=build_dir,
        timeout=settings.STAGE_TIMEOUT,
        echo=echo,
    )
    specs = compose_all(
        params, selected, profile, build_dir=str(build_dir), cxx_flags=settings.cxx_flags,
    )
    results: List[TargetResult] = []
    stop = False
    for kind, spec in specs.items():
        if dry_run:
            results.append(_planned_result(spec, str(source), toolchain, TargetStatus.PLANNED))
            continue
        if stop:
            logger.warning(f"[{kind.value}] skipped (fail-fast)")
            results.append(_planned_result(spec, str(source), toolchain, TargetStatus.SKIPPED))
            continue

        result = driver.build(spec)
        results.append(result)
        if fail_fast and result.status == TargetStatus.FAILED:
            stop = True

    # ── Step 4: receipt ──────────────────────────────────────────────
    receipt = BuildReceipt(
        builder=BuilderInfo(profile_id=profile.profile_id),
        job=JobInfo(
            created_at=created_at,
            finished_at=now_iso(),
            requested_targets=requested,
            selected_targets=[k.value for k in selected],
            dry_run=dry_run,
            fail_fast=fail_fast,
        ),
        source=_source_identity(source),
        toolchain=toolchain_identity,
        parameters=ParametersRecord(**asdict(params)),
        targets=results,
    )
    receipt.job.status = receipt.compute_status()

    receipt_path = write_receipt(receipt, build_dir)
    logger.info(f"Build finished: {receipt.job.status} ({len(results)} targets), receipt {receipt_path}")
    return receipt
