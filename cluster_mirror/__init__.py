"""
.. include:: ../README.md
"""

__all__ = [
    "mirror",
    "manifest",
    "cache",
    "edit",
    "cluster",
    "exceptions",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
