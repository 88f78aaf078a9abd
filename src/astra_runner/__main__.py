"""Module entrypoint for `python -m astra_runner`."""

from astra_runner.cli.app import main


if __name__ == "__main__":  # pragma: no cover - exercised via CLI tests
    main()
