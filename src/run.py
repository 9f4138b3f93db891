import logging
import os
import signal
import sys

from dotenv import load_dotenv

from capture.frame_source import CaptureError
from config.settings import SettingsError, load_settings
from constants import SETTINGS_PATH
from controller import Controller
from home_assistant.websocket_client import SessionError
from utils.logger import LOGGER_NAME, configure_logging

logger = logging.getLogger(LOGGER_NAME)


def main() -> int:
    load_dotenv()
    path = os.getenv("SETTINGS_PATH", SETTINGS_PATH)

    try:
        settings = load_settings(path)
    except SettingsError as e:
        configure_logging()
        logger.error(f"Failed to load settings: {e}")
        return 1

    configure_logging(settings.log_level)
    logger.info(f"Config loaded from {path}")

    controller = Controller(settings)

    def handle_signal(signum, frame):
        logger.info(f"Received {signal.Signals(signum).name}, stopping")
        controller.stop()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    try:
        controller.run()
    except (CaptureError, SessionError) as e:
        logger.error(f"Startup failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
