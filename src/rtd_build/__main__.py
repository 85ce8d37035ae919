"""Allow running as `python -m rtd_build`."""

from rtd_build.cli import main

main()
