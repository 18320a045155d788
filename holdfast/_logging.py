import logging
import sys

LOGGER_NAME = 'holdfast'


def default_logger() -> logging.Logger:
    '''
    The logger connections use when none is configured. It writes to
    stdout, unless the application has already configured logging for
    the package or the root logger.

    Returns
    -------
    logging.Logger
    '''
    logger = logging.getLogger(LOGGER_NAME)
    if logger.hasHandlers():
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(
        fmt='%(asctime)s %(levelname)s [%(name)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    ))
    logger.addHandler(handler)
    if logger.level == logging.NOTSET:
        logger.setLevel(logging.INFO)
    return logger
