"""
Command line entry point for texrecon.

This module is invoked when the package is run directly via:
    python -m texrecon IN_SCENE IN_MESH OUT_PREFIX [options]

The installed `texrecon` console script calls the same main().
"""

from texrecon.app import main


if __name__ == "__main__":
    main()
