import logging, json, sys, time, os

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record: ts, level, name, msg (and exc when present)."""

    converter = time.gmtime

    def __init__(self):
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%SZ")

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def get_logger(name="Tracker", level=logging.INFO, to_file=None):
    """
    Configure the tracker's root logger.

    Components log through children of "Tracker" (Tracker.Service,
    Tracker.Storage.SQLite, ...), so calling this once from the entry point
    covers all of them. `level` may be a number or a name from LOG_LEVELS.
    Handlers are attached only on the first call for a given name.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level, expected one of {', '.join(LOG_LEVELS)}")

    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not logger.handlers:
        formatter = JsonLineFormatter()
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

        if to_file:
            os.makedirs(os.path.dirname(to_file) or ".", exist_ok=True)
            file_handler = logging.FileHandler(to_file)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger
