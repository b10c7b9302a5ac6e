"""Entry point for ``python -m oncallbot``."""

from oncallbot.cli.commands import app

if __name__ == "__main__":
    app()
