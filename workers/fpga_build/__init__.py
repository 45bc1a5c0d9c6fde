"""
fpga_build — build orchestration for the MVDR beamforming FPGA design.

Resolves sparse build parameters, composes toolchain flags per target
(emulator / report / simulator / hardware) and drives the external
SYCL FPGA compiler.  The compiler itself is an opaque collaborator.
"""

__version__ = "0.1.0"
PACKAGE_NAME = "fpga_build"
SCHEMA_VERSION = "0.1"
