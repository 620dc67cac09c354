"""Presentation layer: rich console output for the command-line tool."""

from bluegreen.presentation.console import DeploymentConsole

__all__ = ["DeploymentConsole"]
