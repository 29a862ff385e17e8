"""
microc Command-Line Interface
=============================

- **ucc**: µC compiler front-end driver

Implemented as a Click application with help and error reporting
shared through microc.cli.errors.
"""

__all__ = ["ucc"]
