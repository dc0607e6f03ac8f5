"""
logger.py

Project: NumPy-FlowNet
Author: Gabriel Souza
Description: Logger setup writing training progress both to the console and to a log file
             inside the run directory.
Published: 10-18-2026
"""

import os
import logging


def setup_logger(save_dir, name="numpy_flownet", filename="train.log", level=logging.INFO):
    """
    Configure a logger with a console and a file handler.

    The library modules log under 'numpy_flownet.*', so their messages reach
    these handlers as well.

    Args:
        save_dir (str): Run directory receiving the log file.
        name (str): Logger name.
        filename (str): Log file name inside save_dir.
        level (int): Logging level.

    Returns:
        logging.Logger: The configured logger.
    """
    os.makedirs(save_dir, exist_ok=True)
    logger = logging.getLogger(name)
    logger.setLevel(level)
    # avoid duplicated lines when called twice in one process
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter("%(asctime)s | %(levelname)s | %(message)s", datefmt="%Y-%m-%d %H:%M:%S")

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    file_handler = logging.FileHandler(os.path.join(save_dir, filename))
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    logger.propagate = False
    return logger
