"""Kernel Package Builder - Debian kernel packages from upstream sources.

This package provides the build pipeline that turns an upstream kernel
version and a flavor (vanilla, vm, rt) into checksummed Debian package
bundles, and publishes them to package repositories and a release host.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
