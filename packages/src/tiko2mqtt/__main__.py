"""Run the bridge: ``python -m tiko2mqtt``."""

from tiko2mqtt import App, __version__


def main() -> None:
    App(version=__version__).cli()


if __name__ == "__main__":
    main()
