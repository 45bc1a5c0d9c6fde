"""
test_flags — flag composition per target kind.

Tests verify invariant properties:
  - Composition is deterministic and targets are independent.
  - USM / NUM_SENSORS tokens appear exactly when their inputs say so.
  - Report reuses the hardware link rules in a single invocation.
  - User hardware flags are always the final tokens.
"""
import shlex

import pytest

from fpga_build.core.flags import (
    FlagList,
    common_compile_flags,
    compose_all,
    compose_target,
    split_flags,
    synthesis_link_flags,
)
from fpga_build.core.resolver import resolve_parameters
from fpga_build.core.targets import TARGET_ORDER, Stage, TargetKind

ALL_KINDS = list(TARGET_ORDER)


def _params(profile, host="Linux", **overrides):
    return resolve_parameters(overrides, profile=profile, host_system=host)


class TestFlagList:

    def test_append_only_order(self):
        flags = FlagList(["-a"])
        flags.add("-b").add("-skip", when=False).extend(["-c", "-d"])
        assert flags.freeze() == ("-a", "-b", "-c", "-d")
        assert len(flags) == 4
        assert str(flags) == "-a -b -c -d"

    def test_split_flags(self):
        assert split_flags("") == ([], None)
        assert split_flags('-Xsa "-Xsb=c d"') == (["-Xsa", "-Xsb=c d"], None)

    def test_split_flags_unbalanced_quote_falls_back(self):
        tokens, error = split_flags("-Xsa -Xs'b")
        assert tokens == ["-Xsa", "-Xs'b"]
        assert error is not None


class TestScenarioA:
    """No overrides at all."""

    def test_emulator_compile_flags(self, profile, linux_params):
        spec = compose_target(linux_params, TargetKind.EMULATOR, profile)
        assert spec.compile_flags == ("-fintelfpga", "-fbracket-depth=512", "-DFPGA_EMULATOR")

    def test_emulator_link_flags(self, profile, linux_params):
        spec = compose_target(linux_params, TargetKind.EMULATOR, profile)
        assert spec.link_flags == ("-fintelfpga",)

    def test_no_optional_tokens(self, profile, linux_params):
        for spec in compose_all(linux_params, profile=profile).values():
            tokens = spec.compile_flags + spec.link_flags
            for optional in ("-DUSM_HOST_ALLOCATIONS", "-DLARGE_SENSOR_ARRAY", "-Xsprofile", "/EHsc"):
                assert optional not in tokens
            assert not any(t.startswith(("-DNUM_SENSORS", "-DQRD_MIN_ITERATIONS")) for t in tokens)

    def test_simulator_flags(self, profile, linux_params):
        spec = compose_target(linux_params, TargetKind.SIMULATOR, profile)
        assert spec.compile_flags == ("-fintelfpga", "-fbracket-depth=512")
        assert spec.link_flags == (
            "-fintelfpga", "-fbracket-depth=512", "-Xssimulation", "-Xsghdl",
        )

    def test_hardware_link_flags(self, profile, linux_params):
        spec = compose_target(linux_params, TargetKind.HARDWARE, profile, build_dir="/b")
        assert spec.link_flags == (
            "-fintelfpga",
            "-Xshardware",
            "-fbracket-depth=512",
            "-Xsparallel=2",
            "-Xsboard=intel_a10gx_pac:pac_a10",
            "-reuse-exe=/b/mvdr_beamforming.fpga",
        )


class TestScenarioB:
    """board_id="x.usm_variant", num_sensors=96."""

    @pytest.fixture
    def params(self, profile):
        return _params(profile, board_id="x.usm_variant", num_sensors=96)

    @pytest.mark.parametrize("kind", ALL_KINDS)
    def test_usm_and_sensor_tokens(self, profile, params, kind):
        spec = compose_target(params, kind, profile)
        assert "-DUSM_HOST_ALLOCATIONS" in spec.compile_flags
        assert "-DNUM_SENSORS=96" in spec.compile_flags

    def test_board_selection(self, profile, params):
        spec = compose_target(params, TargetKind.HARDWARE, profile)
        assert "-Xsboard=x.usm_variant" in spec.link_flags


class TestScenarioC:
    """extra_hardware_flags="-Xsextra"."""

    def test_extra_flags_last(self, profile):
        params = _params(profile, extra_hardware_flags="-Xsextra", profiling_enabled=True)
        spec = compose_target(params, TargetKind.HARDWARE, profile, build_dir="/b")
        assert spec.link_flags[-1] == "-Xsextra"
        assert spec.link_flags[-2] == "-reuse-exe=/b/mvdr_beamforming.fpga"
        assert spec.link_flags.index("-Xsprofile") < spec.link_flags.index("-Xsextra")

    def test_multiple_extra_flags_keep_order(self, profile):
        params = _params(profile, extra_hardware_flags="-Xsseed=3 -Xsboard=override")
        spec = compose_target(params, TargetKind.HARDWARE, profile)
        assert spec.link_flags[-2:] == ("-Xsseed=3", "-Xsboard=override")

    @pytest.mark.parametrize("kind", [TargetKind.EMULATOR, TargetKind.SIMULATOR])
    def test_extra_flags_only_reach_backend_targets(self, profile, kind):
        params = _params(profile, extra_hardware_flags="-Xsextra")
        spec = compose_target(params, kind, profile)
        assert "-Xsextra" not in spec.compile_flags + spec.link_flags


class TestOptionalTokens:

    @pytest.mark.parametrize("board, expected", [
        ("intel_s10sx_pac:pac_s10_usm", True),
        ("x.usm_variant", True),
        ("intel_s10sx_pac:pac_s10", False),
        ("intel_a10gx_pac:pac_a10", False),
    ])
    def test_usm_iff_board_convention(self, profile, board, expected):
        params = _params(profile, board_id=board)
        for kind in ALL_KINDS:
            spec = compose_target(params, kind, profile)
            assert ("-DUSM_HOST_ALLOCATIONS" in spec.compile_flags) is expected

    @pytest.mark.parametrize("raw, token", [
        (96, "-DNUM_SENSORS=96"),
        ("16", "-DNUM_SENSORS=16"),
        (0, None),
        (-3, None),
        (None, None),
    ])
    def test_num_sensors_token(self, profile, raw, token):
        params = _params(profile, num_sensors=raw)
        for kind in ALL_KINDS:
            sensor_tokens = [
                t for t in compose_target(params, kind, profile).compile_flags
                if t.startswith("-DNUM_SENSORS")
            ]
            assert sensor_tokens == ([token] if token else [])

    def test_raw_token_passed_through(self, profile):
        params = _params(profile, qrd_min_iterations="eighty")
        spec = compose_target(params, TargetKind.EMULATOR, profile)
        assert "-DQRD_MIN_ITERATIONS=eighty" in spec.compile_flags

    def test_conflicting_sizes_pass_through(self, profile):
        params = _params(profile, large_sensor_array=True, num_sensors=96)
        flags = common_compile_flags(params, profile)
        assert flags[-2:] == ("-DLARGE_SENSOR_ARRAY", "-DNUM_SENSORS=96")

    def test_profiling_only_in_backend_link(self, profile):
        params = _params(profile, profiling_enabled=True)
        specs = compose_all(params, profile=profile)
        assert "-Xsprofile" in specs[TargetKind.HARDWARE].link_flags
        assert "-Xsprofile" in specs[TargetKind.REPORT].link_flags
        assert "-Xsprofile" not in specs[TargetKind.EMULATOR].link_flags
        assert "-Xsprofile" not in specs[TargetKind.SIMULATOR].link_flags

    def test_host_error_flag_on_windows(self, profile):
        params = _params(profile, host="Windows")
        specs = compose_all(params, profile=profile)
        assert specs[TargetKind.EMULATOR].compile_flags[0] == "/EHsc"
        assert specs[TargetKind.HARDWARE].compile_flags[0] == "/EHsc"
        assert specs[TargetKind.REPORT].compile_flags[0] == "/EHsc"
        assert "/EHsc" not in specs[TargetKind.SIMULATOR].compile_flags


class TestReport:

    def test_single_invocation(self, profile, linux_params):
        specs = compose_all(linux_params, profile=profile)
        assert specs[TargetKind.REPORT].invocation_count == 1
        for kind in (TargetKind.EMULATOR, TargetKind.SIMULATOR, TargetKind.HARDWARE):
            assert specs[kind].invocation_count == 2

    def test_reuses_hardware_link_rules(self, profile):
        params = _params(profile, board_id="x.usm_variant", profiling_enabled=True,
                         qrd_min_iterations=85, extra_hardware_flags="-Xsextra")
        hw = compose_target(params, TargetKind.HARDWARE, profile)
        report = compose_target(params, TargetKind.REPORT, profile)

        synth = synthesis_link_flags(params, profile)
        assert hw.link_flags[:len(synth)] == synth
        assert report.link_flags[:len(synth)] == synth
        assert report.link_flags[len(synth):] == ("-fsycl-link=early", "-Xsextra")
        assert not any(t.startswith("-reuse-exe") for t in report.link_flags)

    def test_report_output(self, profile, linux_params):
        spec = compose_target(linux_params, TargetKind.REPORT, profile, build_dir="/b")
        assert spec.output_path == "/b/mvdr_beamforming_report.a"


class TestDeterminism:

    @pytest.mark.parametrize("kind", ALL_KINDS)
    def test_identical_inputs_identical_tokens(self, profile, kind):
        overrides = dict(board_id="intel_s10sx_pac:pac_s10_usm", num_sensors=32,
                         qrd_min_iterations=90, profiling_enabled=True,
                         extra_hardware_flags="-Xsa -Xsb")
        first = compose_target(_params(profile, **overrides), kind, profile, build_dir="/b")
        second = compose_target(_params(profile, **overrides), kind, profile, build_dir="/b")
        assert first == second
        assert " ".join(first.link_flags) == " ".join(second.link_flags)

    def test_targets_share_no_state(self, profile, linux_params):
        specs = compose_all(linux_params, profile=profile)
        assert isinstance(specs[TargetKind.HARDWARE].link_flags, tuple)
        alone = compose_target(linux_params, TargetKind.EMULATOR, profile)
        assert specs[TargetKind.EMULATOR] == alone


class TestInvocations:

    def test_two_stage_commands(self, profile, linux_params):
        spec = compose_target(linux_params, TargetKind.EMULATOR, profile, build_dir="/b",
                              cxx_flags=["-O2"])
        compile_inv, link_inv = spec.invocations("/s/mvdr_beamforming.cpp", ["dpcpp"])

        assert compile_inv.stage == Stage.COMPILE
        assert compile_inv.argv == (
            "dpcpp", "-O2", "-fintelfpga", "-fbracket-depth=512", "-DFPGA_EMULATOR",
            "-c", "/s/mvdr_beamforming.cpp", "-o", "/b/obj/mvdr_beamforming.fpga_emu.o",
        )
        assert link_inv.stage == Stage.LINK
        assert link_inv.argv == (
            "dpcpp", "-fintelfpga", "/b/obj/mvdr_beamforming.fpga_emu.o",
            "-o", "/b/mvdr_beamforming.fpga_emu",
        )

    def test_report_command(self, profile, linux_params):
        spec = compose_target(linux_params, TargetKind.REPORT, profile, build_dir="/b")
        (inv,) = spec.invocations("/s/mvdr_beamforming.cpp", ["dpcpp"])

        assert inv.stage == Stage.EARLY_LINK
        assert inv.argv[0] == "dpcpp"
        assert "-fsycl-link=early" in inv.argv
        assert inv.argv[-3:] == ("/s/mvdr_beamforming.cpp", "-o", "/b/mvdr_beamforming_report.a")
        assert inv.command.startswith("dpcpp -fintelfpga")

    def test_command_quotes_arguments(self, profile):
        params = resolve_parameters({"extra_hardware_flags": "'-Xsb=c d'"},
                                    profile=profile, host_system="Linux")
        spec = compose_target(params, TargetKind.HARDWARE, profile, build_dir="/b")
        _, link_inv = spec.invocations("/s/mvdr_beamforming.cpp", ["dpcpp"])

        assert "'-Xsb=c d'" in link_inv.command
        assert shlex.split(link_inv.command) == list(link_inv.argv)
