import logging

from rich.logging import RichHandler

from utils import config


class CenteredFormatter(logging.Formatter):
    """Pads logger names so the message column lines up across modules."""

    longest_name_length = 14  # grows as longer logger names show up

    def __init__(self, fmt=None, datefmt=None, style="%", initial_width=14):
        super().__init__(fmt, datefmt, style)
        CenteredFormatter.longest_name_length = initial_width

    def format(self, record):
        CenteredFormatter.longest_name_length = max(
            CenteredFormatter.longest_name_length, len(record.name)
        )
        # work on a copy so other handlers still see the raw name
        record = logging.makeLogRecord(record.__dict__)
        record.name = record.name.center(CenteredFormatter.longest_name_length)
        return super().format(record)


def get_logger(name=None) -> logging.Logger:
    """
    Return a logger writing through rich's RichHandler.

    Level is DEBUG when the DEBUG environment variable is set, INFO otherwise.
    Handlers are attached once per logger name.
    """
    if name is None:
        name = "shopfront"
    logger = logging.getLogger(name)
    log_level = logging.DEBUG if config.development_mode() else logging.INFO
    logger.setLevel(log_level)

    if not logger.handlers:
        formatter = CenteredFormatter("[%(name)s]  %(message)s")

        console_handler = RichHandler(
            show_time=True,
            show_level=True,
            show_path=False,
            rich_tracebacks=True,
            log_time_format="[%X]",
        )
        console_handler.setFormatter(formatter)
        console_handler.setLevel(log_level)
        logger.addHandler(console_handler)

        logger.propagate = False
        logger.debug(f"Logger for '{name}' attached to RichHandler.")

    return logger
