"""
Profile — design descriptor, flag vocabulary and board capability table.

The profile is the single immutable configuration value injected into
the resolver and the composer.  Changing the default board, the flag
spelling of a toolchain release, or adding a board is a profile change,
not a code change.
"""
import re
from dataclasses import dataclass, field
from typing import Dict, Optional


@dataclass(frozen=True)
class BoardCapabilities:
    """Structured capability record for one board descriptor."""

    board_id: str
    usm_host_allocations: bool = False
    description: str = ""


# Boards not listed in the capability table fall back to this naming
# convention (USM BSP variants carry a ".usm" style suffix).
USM_BOARD_PATTERN = re.compile(r".usm")


@dataclass(frozen=True)
class Profile:
    """Describes the design being built and how its flags are spelled."""

    # Identity
    profile_id: str
    project_name: str
    source_file: str

    # Board selection
    default_board: str
    boards: Dict[str, BoardCapabilities] = field(default_factory=dict)

    # Flag vocabulary
    device_flag: str = "-fintelfpga"
    bracket_depth: int = 512
    usm_define: str = "-DUSM_HOST_ALLOCATIONS"
    large_sensor_array_define: str = "-DLARGE_SENSOR_ARRAY"
    num_sensors_define: str = "NUM_SENSORS"
    qrd_min_iterations_define: str = "QRD_MIN_ITERATIONS"
    emulator_define: str = "-DFPGA_EMULATOR"
    host_error_flag: str = "/EHsc"
    hardware_flag: str = "-Xshardware"
    profile_flag: str = "-Xsprofile"
    simulation_flag: str = "-Xssimulation"
    waveform_flag: str = "-Xsghdl"
    parallel_compile_jobs: int = 2
    early_link_flag: str = "-fsycl-link=early"

    # Host platform family that needs the error-handling flag
    host_error_platform: str = "Windows"

    @classmethod
    def mvdr(cls) -> "Profile":
        """The MVDR beamforming reference design on Intel PAC boards."""
        boards = {
            "intel_a10gx_pac:pac_a10": BoardCapabilities(
                board_id="intel_a10gx_pac:pac_a10",
                usm_host_allocations=False,
                description="Intel PAC with Intel Arria 10 GX FPGA",
            ),
            "intel_s10sx_pac:pac_s10": BoardCapabilities(
                board_id="intel_s10sx_pac:pac_s10",
                usm_host_allocations=False,
                description="Intel FPGA PAC D5005 (Stratix 10 SX)",
            ),
            "intel_s10sx_pac:pac_s10_usm": BoardCapabilities(
                board_id="intel_s10sx_pac:pac_s10_usm",
                usm_host_allocations=True,
                description="Intel FPGA PAC D5005 with USM host allocations",
            ),
        }
        return cls(
            profile_id="mvdr-beamforming-dpcpp-fpga",
            project_name="mvdr_beamforming",
            source_file="mvdr_beamforming.cpp",
            default_board="intel_a10gx_pac:pac_a10",
            boards=boards,
        )

    @property
    def bracket_depth_flag(self) -> str:
        return f"-fbracket-depth={self.bracket_depth}"

    @property
    def parallel_flag(self) -> str:
        return f"-Xsparallel={self.parallel_compile_jobs}"

    def board_flag(self, board_id: str) -> str:
        return f"-Xsboard={board_id}"

    def describe_board(self, board_id: str) -> Optional[str]:
        caps = self.boards.get(board_id)
        return caps.description if caps and caps.description else None


def lookup_capabilities(board_id: str, profile: Profile) -> BoardCapabilities:
    """
    Return the capability record for *board_id*.

    Known boards come straight from the profile table.  Unknown boards get
    a record derived from the USM naming convention.
    """
    known = profile.boards.get(board_id)
    if known is not None:
        return known
    return BoardCapabilities(
        board_id=board_id,
        usm_host_allocations=USM_BOARD_PATTERN.search(board_id) is not None,
    )
