import logging
import os
from pathlib import Path

LOG_DIR = Path(os.environ.get("MDTRANSLATOR_LOG_DIR", Path(__file__).parent.parent / "logs"))
LOG_FILE = LOG_DIR / "app.log"

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Cache for log mode to avoid repeated config reads
_log_mode_cache = None


def _get_log_mode():
    """Get log mode: environment override, then the last mode pushed by the config layer."""
    env_mode = os.environ.get("MDTRANSLATOR_LOG_MODE")
    if env_mode:
        return env_mode
    if _log_mode_cache is not None:
        return _log_mode_cache
    return 'off'


def _levels_for(log_mode):
    if log_mode == 'debug':
        return logging.DEBUG, logging.DEBUG
    if log_mode == 'off':
        return logging.CRITICAL + 1, logging.CRITICAL + 1
    return logging.INFO, logging.INFO


def _apply_mode(logger: logging.Logger, log_mode: str) -> None:
    logger_level, console_level = _levels_for(log_mode)
    logger.setLevel(logger_level)
    log_format = logging.Formatter(LOG_FORMAT)

    file_handlers = [h for h in logger.handlers if isinstance(h, logging.FileHandler)]
    console_handlers = [
        h for h in logger.handlers
        if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
    ]

    if log_mode != 'off' and not file_handlers:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        f_handler = logging.FileHandler(LOG_FILE, encoding='utf-8')
        f_handler.setLevel(logging.DEBUG)
        f_handler.setFormatter(log_format)
        logger.addHandler(f_handler)
    elif log_mode == 'off' and file_handlers:
        for handler in file_handlers:
            handler.close()
            logger.removeHandler(handler)

    if not console_handlers:
        c_handler = logging.StreamHandler()
        c_handler.setFormatter(log_format)
        logger.addHandler(c_handler)
        console_handlers = [c_handler]

    for handler in console_handlers:
        handler.setLevel(console_level)

    # Marks loggers owned by this module
    logger._mdtranslator_managed = True


def refresh_log_mode(log_mode=None):
    """Store the configured log mode and update all existing loggers (call this when config is updated)."""
    global _log_mode_cache
    if log_mode is not None:
        if log_mode == _log_mode_cache:
            return
        _log_mode_cache = log_mode

    log_mode = _get_log_mode()
    for logger_name in list(logging.Logger.manager.loggerDict.keys()):
        logger = logging.getLogger(logger_name)
        if getattr(logger, '_mdtranslator_managed', False):
            _apply_mode(logger, log_mode)


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    _apply_mode(logger, _get_log_mode())
    return logger
