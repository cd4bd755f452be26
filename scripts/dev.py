"""
Development runner that re-runs the test suite on file changes.

Watches the texrecon/ and tests/ directories and starts a fresh pytest
process whenever a file is saved, so the suite always runs against the
current sources.

Uses the `watchfiles` library (installed with the `dev` extra).

Usage:
    python scripts/dev.py [pytest args...]

To stop: Ctrl+C in the terminal.
"""

import subprocess
import sys
from pathlib import Path

from watchfiles import run_process

ROOT = Path(__file__).resolve().parent.parent


def run_tests(*pytest_args):
    """Run pytest in a subprocess so every run imports the sources afresh."""
    subprocess.run([sys.executable, "-m", "pytest", *pytest_args], cwd=ROOT)


if __name__ == "__main__":
    watched = [ROOT / "texrecon", ROOT / "tests"]
    print(f"Watching {', '.join(str(p) for p in watched)} for changes...")

    run_process(
        *watched,
        target=run_tests,
        args=tuple(sys.argv[1:]),
        callback=lambda changes: print(f"\nFiles changed: {[str(c[1]) for c in changes]}"),
    )
