"""
CLI layer for the Sorane client.

Thin terminal transport over :class:`sorane.client.Sorane`: argument
parsing, coloured output and confirmation prompts.

Entry point::

    sorane --help
"""

from sorane.cli.app import app

__all__ = ["app"]
