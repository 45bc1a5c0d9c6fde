"""
Command-line entry point.

    fpga-build                        # default aggregate: emulator + report
    fpga-build fpga -D FPGA_BOARD=intel_s10sx_pac:pac_s10_usm
    fpga-build fpga_sim --num-sensors 96 --dry-run
"""
import argparse
import logging
import shlex
import sys
from typing import Dict, List, Optional

from fpga_build import __version__
from fpga_build.config import Settings
from fpga_build.core.graph import TargetGraph, UnknownTargetError
from fpga_build.policy.profile import Profile
from fpga_build.policy.validation import InvalidConfiguration
from fpga_build.runner import run_build

logger = logging.getLogger("fpga_build")

EXIT_OK = 0
EXIT_BUILD_FAILED = 1
EXIT_USAGE = 2

# Options whose value is itself a flag list (e.g. -Xsseed=1).  argparse would
# read a leading dash as the next option, so the value is glued on with "=".
FLAG_VALUED_OPTIONS = ("--user-hardware-flags",)


def parse_defines(defines: List[str]) -> Dict[str, str]:
    """-D KEY=VALUE pairs (a bare KEY means ON)."""
    values: Dict[str, str] = {}
    for item in defines:
        key, sep, value = item.partition("=")
        key = key.strip()
        if not key:
            raise ValueError(f"Malformed -D option: '{item}'")
        # CMake accepts KEY:TYPE=VALUE
        key = key.split(":", 1)[0]
        values[key] = value if sep else "ON"
    return values


def attach_flag_values(argv: List[str]) -> List[str]:
    """Rewrite '--user-hardware-flags -Xs...' into '--user-hardware-flags=-Xs...'."""
    joined: List[str] = []
    args = iter(argv)
    for arg in args:
        if arg in FLAG_VALUED_OPTIONS:
            value = next(args, None)
            if value is None:
                joined.append(arg)
            else:
                joined.append(f"{arg}={value}")
        else:
            joined.append(arg)
    return joined


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fpga-build",
        description="Build the MVDR beamforming design for FPGA emulation, "
                    "reports, simulation or hardware.",
    )
    parser.add_argument(
        "targets", nargs="*",
        help="Targets to build (emulator/fpga_emu, report, simulator/fpga_sim, "
             "hardware/fpga, all). Default: all (emulator + report).",
    )
    parser.add_argument(
        "-D", dest="defines", action="append", default=[], metavar="KEY=VALUE",
        help="Set a build parameter, e.g. -D FPGA_BOARD=... -D NUM_SENSORS=96",
    )
    parser.add_argument("--board", dest="board_id", help="FPGA board descriptor")
    parser.add_argument("--profile-hw", dest="profiling_enabled", action="store_true",
                        default=None, help="Enable hardware profiling")
    parser.add_argument("--large-sensor-array", dest="large_sensor_array",
                        action="store_true", default=None,
                        help="Use the large (64 sensor) array configuration")
    parser.add_argument("--num-sensors", dest="num_sensors",
                        help="Explicit sensor count (hardware runs need matching data)")
    parser.add_argument("--qrd-min-iterations", dest="qrd_min_iterations",
                        help="Minimum iterations for the QRD kernel")
    parser.add_argument("--user-hardware-flags", dest="extra_hardware_flags",
                        help="Extra FPGA backend flags, appended last; values may start "
                             "with a dash, e.g. --user-hardware-flags '-Xsseed=2 -Xsfast-compile'")

    parser.add_argument("--source", help="Source file (default: profile source)")
    parser.add_argument("--build-dir", help="Build directory")
    parser.add_argument("--toolchain", help="Compiler command (default: dpcpp)")
    parser.add_argument("--timeout", type=int, help="Per-stage timeout in seconds")

    parser.add_argument("--list", action="store_true", help="List targets and exit")
    parser.add_argument("--dry-run", action="store_true",
                        help="Print toolchain invocations without running them")
    parser.add_argument("--strict", action="store_true",
                        help="Reject malformed or conflicting build parameters")
    parser.add_argument("--fail-fast", action="store_true",
                        help="Stop after the first failed target")
    parser.add_argument("--log-level", help="Logging level (default: INFO)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _list_targets(profile: Profile) -> None:
    graph = TargetGraph(profile)
    for kind, node in graph.nodes.items():
        default = "default" if node.in_default else "explicit"
        sources = ",".join(graph.dependencies(kind))
        print(f"{kind.value:<10} {node.group:<9} {node.artifact:<28} {default:<8} {sources}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    if argv is None:
        argv = sys.argv[1:]
    args = parser.parse_args(attach_flag_values(list(argv)))

    settings_overrides = {
        "SOURCE": args.source,
        "BUILD_DIR": args.build_dir,
        "TOOLCHAIN": args.toolchain,
        "STAGE_TIMEOUT": args.timeout,
        "LOG_LEVEL": args.log_level,
    }
    settings = Settings(**{k: v for k, v in settings_overrides.items() if v is not None})

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    profile = Profile.mvdr()
    if args.list:
        _list_targets(profile)
        return EXIT_OK

    try:
        overrides: Dict[str, object] = parse_defines(args.defines)
    except ValueError as e:
        parser.error(str(e))
    for key in ("board_id", "profiling_enabled", "large_sensor_array",
                "num_sensors", "qrd_min_iterations", "extra_hardware_flags"):
        value = getattr(args, key)
        if value is not None:
            overrides[key] = value

    try:
        receipt = run_build(
            overrides=overrides,
            targets=args.targets,
            settings=settings,
            profile=profile,
            strict=args.strict,
            dry_run=args.dry_run,
            fail_fast=args.fail_fast,
            echo=not args.dry_run,
        )
    except (InvalidConfiguration, UnknownTargetError) as e:
        logger.error(str(e))
        return EXIT_USAGE

    if args.dry_run:
        for target in receipt.targets:
            print(f"# {target.target} -> {target.output_path}")
            for stage in target.stages:
                print(shlex.join(stage.argv))
        return EXIT_OK

    for target in receipt.targets:
        print(f"{target.target:<10} {target.status.value}")
    return EXIT_OK if receipt.job.status == "SUCCESS" else EXIT_BUILD_FAILED


if __name__ == "__main__":
    sys.exit(main())
