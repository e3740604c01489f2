"""
PocketBook Highlights

Order PocketBook Cloud highlights by their position in the book and rejoin
highlights the reader split across page boundaries.
"""

__version__ = "1.0.0"
__license__ = "GPL-3.0-or-later"

# Package metadata
__all__ = [
    "__version__",
    "__license__",
]
