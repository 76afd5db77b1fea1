import logging
import sys

CONSOLE_FORMAT = '%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s'


class LauncherFormatter(logging.Formatter):
    """A custom formatter that prints plain INFO lines for the user and the long format for everything else."""

    def __init__(self, verbose: bool = False) -> None:
        super().__init__(CONSOLE_FORMAT)
        self.verbose = verbose

    def format(self, record):
        # In non-verbose mode, informational messages read like regular console output.
        if not self.verbose and record.levelno == logging.INFO:
            return record.getMessage()
        return super().format(record)


def setup_logging(console_level: int = logging.INFO) -> None:
    """
    Configures the root logger for the launcher.
    This sets up the console handler, clearing any previously
    configured handlers to prevent duplication.

    :param console_level: The logging level for the console output (e.g., logging.INFO).
    """
    root_logger = logging.getLogger()
    # Set root level to lowest to capture all messages for handler filtering
    root_logger.setLevel(logging.DEBUG)

    # Clear any existing handlers to prevent re-adding them on re-runs
    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    # --- Console Handler ---
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(LauncherFormatter(verbose=console_level <= logging.DEBUG))
    root_logger.addHandler(console_handler)

    # urllib3 is noisy at DEBUG.
    logging.getLogger("urllib3").setLevel(logging.WARNING)
