"""
texrecon — Texture reconstruction for calibrated multi-view photo sets.

This is the top-level package. Given a triangle mesh and a set of
photographs with known camera calibration, texrecon picks a source photo
for every face, cuts and packs the chosen image regions into a texture
atlas, and consolidates the result into one textured mesh — written to
disk by the command line tool, or returned as buffers by the library call.

The version string below is the single source of truth for the package
version, referenced by pyproject.toml and the written .conf files.
"""

__version__ = "0.1.0"
