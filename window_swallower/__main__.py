"""Entry point for `python -m window_swallower`."""

from .cli import cli

if __name__ == "__main__":
    cli()
