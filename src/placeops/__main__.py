"""Allow ``python -m placeops``."""

from placeops.cli.app import app

if __name__ == "__main__":
    app()
