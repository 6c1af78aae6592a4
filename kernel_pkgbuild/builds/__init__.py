"""Build orchestration module.

This module handles:
- Patch application
- Running the kernel build system
- Source package and metapackage generation
- Artifact discovery, naming and checksums

Access submodules via kernel_pkgbuild.builds.runner, etc.
"""
