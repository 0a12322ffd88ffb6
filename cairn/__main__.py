"""Entry point for running cairn as a module.

This module allows cairn to be run as a Python module using the -m flag:
    python -m cairn

It serves as the main entry point for the cairn command-line interface.
"""

from . import cli

if __name__ == "__main__":
    cli._main()
