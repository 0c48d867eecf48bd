import logging
import logging.config
from pathlib import Path
from typing import Dict

# Packages whose loggers follow the debug switch
APP_LOGGERS = ("api", "services", "database", "client")

# Chatty third-party loggers that only matter at WARNING
QUIET_LOGGERS = ("httpx", "httpcore", "openai", "hpack")


def _rotating(filename: str, level: str) -> Dict:
    return {
        'class': 'logging.handlers.RotatingFileHandler',
        'level': level,
        'formatter': 'detailed',
        'filename': filename,
        'maxBytes': 10485760,  # 10MB
        'backupCount': 5,
        'encoding': 'utf8'
    }


def setup_logging(log_level: str = "INFO", log_file: str = "logs/chatstream.log", debug: bool = False):
    """
    Configure console plus rotating file logging for the chat backend.

    Errors are additionally written to errors.log next to log_file. With
    debug on, the application packages log at DEBUG regardless of log_level.
    """
    log_file_path = Path(log_file)
    log_file_path.parent.mkdir(parents=True, exist_ok=True)
    log_file_path.touch(exist_ok=True)
    error_file = str(log_file_path.parent / "errors.log")

    app_level = 'DEBUG' if debug else log_level
    app_handlers = ['console', 'file', 'error_file']

    loggers = {
        '': {  # Root logger
            'level': log_level,
            'handlers': app_handlers,
            'propagate': False
        },
        'uvicorn': {
            'level': 'INFO',
            'handlers': ['console', 'file'],
            'propagate': False
        },
        'fastapi': {
            'level': 'INFO',
            'handlers': ['console', 'file'],
            'propagate': False
        }
    }
    for name in APP_LOGGERS:
        loggers[name] = {'level': app_level, 'handlers': app_handlers, 'propagate': False}
    for name in QUIET_LOGGERS:
        loggers[name] = {'level': 'WARNING'}

    logging_config = {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'standard': {
                'format': '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
            },
            'detailed': {
                'format': '%(asctime)s [%(levelname)s] %(name)s [%(filename)s:%(lineno)d]: %(message)s'
            }
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'level': app_level,
                'formatter': 'standard',
                'stream': 'ext://sys.stdout'
            },
            'file': _rotating(log_file, 'DEBUG'),
            'error_file': _rotating(error_file, 'ERROR'),
        },
        'loggers': loggers,
    }

    # Clear any existing handlers to avoid conflicts
    logging.getLogger().handlers.clear()

    logging.config.dictConfig(logging_config)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized (level={log_level}, debug={debug}, file={log_file})")

    return logging.getLogger()
