"""
Build configuration
"""
import shlex
from typing import Any, Dict, List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Build settings, read from FPGA_BUILD_* environment variables or .env"""

    # Toolchain
    TOOLCHAIN: str = "dpcpp"
    CXX_FLAGS: str = ""
    STAGE_TIMEOUT: Optional[int] = None  # seconds, None = wait for the toolchain

    # Paths
    SOURCE: Optional[str] = None  # defaults to the profile's source file
    BUILD_DIR: str = "build"

    # Logging
    LOG_LEVEL: str = "INFO"

    # Build parameter defaults (command-line overrides win)
    FPGA_BOARD: Optional[str] = None
    PROFILE_HW: Optional[str] = None
    LARGE_SENSOR_ARRAY: Optional[str] = None
    NUM_SENSORS: Optional[str] = None
    QRD_MIN_ITERATIONS: Optional[str] = None
    USER_HARDWARE_FLAGS: Optional[str] = None

    @property
    def toolchain_command(self) -> List[str]:
        """Toolchain program plus any fixed leading arguments."""
        return shlex.split(self.TOOLCHAIN)

    @property
    def cxx_flags(self) -> List[str]:
        return shlex.split(self.CXX_FLAGS)

    def parameter_overrides(self) -> Dict[str, Any]:
        """Build parameters set through the environment."""
        values = {
            "FPGA_BOARD": self.FPGA_BOARD,
            "PROFILE_HW": self.PROFILE_HW,
            "LARGE_SENSOR_ARRAY": self.LARGE_SENSOR_ARRAY,
            "NUM_SENSORS": self.NUM_SENSORS,
            "QRD_MIN_ITERATIONS": self.QRD_MIN_ITERATIONS,
            "USER_HARDWARE_FLAGS": self.USER_HARDWARE_FLAGS,
        }
        return {k: v for k, v in values.items() if v is not None}

    class Config:
        env_prefix = "FPGA_BUILD_"
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"
