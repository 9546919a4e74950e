"""Command-line interface for DocEye."""

from .main import cli
from .types import CLIContext, CommandResult

__all__ = ["cli", "CLIContext", "CommandResult"]
