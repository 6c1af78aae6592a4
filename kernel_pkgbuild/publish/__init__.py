"""Publishing module.

This module handles:
- Uploading packages to packagecloud and Nexus with bounded retry
- Tagging and publishing draft releases with generated notes
"""
