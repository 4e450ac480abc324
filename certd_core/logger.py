import logging, json, sys, time, os


def get_logger(name="certd", level=logging.INFO, to_file=None):
    """Unified structured logger for all certd components.

    Child loggers (``certd.storage.merge`` etc.) propagate into the
    handlers configured here, so only the root ``certd`` logger needs them.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter(
            fmt=json.dumps({
                "ts": "%(asctime)s",
                "level": "%(levelname)s",
                "name": "%(name)s",
                "msg": "%(message)s"
            }),
            datefmt="%Y-%m-%dT%H:%M:%SZ",
        )
        formatter.converter = time.gmtime  # Use UTC timestamps
        handler.setFormatter(formatter)
        logger.addHandler(handler)

        if to_file:
            # Ensure the directory exists before writing
            os.makedirs(os.path.dirname(to_file) or ".", exist_ok=True)
            file_handler = logging.FileHandler(to_file)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger


def child_logger(suffix: str) -> logging.Logger:
    return logging.getLogger(f"certd.{suffix}")
