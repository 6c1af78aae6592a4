"""Kernel configuration module.

This module handles:
- Reading and editing .config files
- Baseline selection and automated tweaks
- Baseline-versus-resolved diffs
- Categorized Markdown reports of configuration changes
"""
