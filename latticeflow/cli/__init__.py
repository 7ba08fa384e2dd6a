"""latticeflow command-line interface.

Exposes:
    cli -- Click group entry point (registered as ``latticeflow`` script).
"""

from latticeflow.cli.main import cli

__all__ = ["cli"]
