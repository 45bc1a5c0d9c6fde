import sys

from fpga_build.cli import main

sys.exit(main())
