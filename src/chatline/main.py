"""Application entry point for Chatline backend server."""

from chatline.app import App
from chatline.config import Config
from chatline.logging import setup_logging
from chatline.web.runner import run_server


def main() -> None:
    config = Config()
    setup_logging(config.debug)
    app = App(config)
    run_server(app, config)


if __name__ == "__main__":
    main()
