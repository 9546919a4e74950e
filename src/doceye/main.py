"""Main entry point for the DocEye monitor."""

import sys


def main_cli() -> None:
    """Entry point for the CLI application."""
    try:
        from .cli.main import cli

        cli()
    except KeyboardInterrupt:
        print("\n❌ Operation cancelled by user")
        sys.exit(1)


if __name__ == "__main__":
    main_cli()
