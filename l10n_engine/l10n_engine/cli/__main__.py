"""Entry point for `python -m l10n_engine.cli` and the `l10n` console script."""

from __future__ import annotations

from l10n_engine.cli.app import app


def main() -> None:
    app()


if __name__ == "__main__":
    main()
