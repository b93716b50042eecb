"""Logger utility for structured logging."""

import logging
import sys
from pathlib import Path


DEFAULT_LOGGER_NAME = "spotify_import"

# Names of loggers already configured by setup_logger()
_configured = set()


def setup_logger(name: str = DEFAULT_LOGGER_NAME, log_file: str = None,
                 verbose: bool = False) -> logging.Logger:
    """
    Set up a logger with console and optional file output.
    
    Args:
        name: Logger name
        log_file: Optional path to log file. If None, logs to console only.
        verbose: Show debug messages on the console
    
    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    
    # Prevent duplicate handlers
    if name in _configured:
        return logger
    
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    
    # Replace the plain console handler installed by get_logger()
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()
    _configured.add(name)
    
    console_formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)
    
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        
        # The file always gets debug output
        logger.setLevel(logging.DEBUG)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)
    
    return logger


def get_logger(name: str = DEFAULT_LOGGER_NAME) -> logging.Logger:
    """
    Get or create a logger instance with console output.
    
    Args:
        name: Logger name
    
    Returns:
        Logger instance with console handler
    """
    logger = logging.getLogger(name)
    
    if not logger.handlers:
        logger.setLevel(logging.INFO)
        
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(logging.Formatter('%(message)s'))
        logger.addHandler(console_handler)
    
    return logger
