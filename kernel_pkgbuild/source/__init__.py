"""Upstream kernel source acquisition.

Submodules:
- fetch: tarball download, extraction and version detection
"""
