"""Entry point for ``python -m tokentrim``."""

from tokentrim.cli.commands import app

if __name__ == "__main__":
    app()
