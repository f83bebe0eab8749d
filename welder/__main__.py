"""Allow ``python -m welder``."""

from .cli import app

if __name__ == "__main__":
    app()
