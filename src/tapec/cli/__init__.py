"""
tapec Command-Line Interface
============================

This package provides the command-line tools for tapec:

- **tapecc**: Tape compiler
- **taperun**: Tape machine runner

Each tool is implemented as a Click-based CLI application with
comprehensive help and error reporting.
"""

__all__ = ["tapecc", "taperun"]
