import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = '%(asctime)s %(levelname)s [%(name)s] %(funcName)s:%(lineno)d %(message)s'

RESEARCH_CONTEXT_FIELDS = ('game_title', 'fingerprint', 'stage', 'pattern', 'error_kind')


def configure_logging(
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
    enable_structured_logging: bool = False,
) -> None:
    """Configure root logging with an optional rotating file and JSON output."""

    # RULEMASTER_LOG_LEVEL wins over the argument when it names a real level
    env_level = os.getenv('RULEMASTER_LOG_LEVEL', '').upper()
    if env_level in ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']:
        level = getattr(logging, env_level)
    if os.getenv('RULEMASTER_STRUCTURED_LOGS', '').lower() == 'true':
        enable_structured_logging = True

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter: logging.Formatter
    if enable_structured_logging:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    configure_research_loggers(level)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured - Level: {logging.getLevelName(level)}")
    if log_file:
        logger.info(f"Log file: {log_file}")


def configure_research_loggers(level: int) -> None:
    """Align the research component loggers with the root level."""

    research_loggers = [
        'rulemaster_api.research.orchestrator',
        'rulemaster_api.research.bgg_gateway',
        'rulemaster_api.research.research_service',
        'rulemaster_api.research.research_cache',
        'rulemaster_api.research.research_limiter',
        'rulemaster_api.research.complexity_analyzer',
    ]

    for logger_name in research_loggers:
        logging.getLogger(logger_name).setLevel(level)

    # The fan-out is chatty; keep it at INFO unless debugging explicitly
    if level == logging.DEBUG:
        logging.getLogger('rulemaster_api.research.bgg_gateway').setLevel(logging.DEBUG)

    logging.getLogger('botocore').setLevel(max(level, logging.WARNING))


class StructuredFormatter(logging.Formatter):
    """Structured JSON formatter for production logging."""

    def format(self, record: logging.LogRecord) -> str:
        import json
        from datetime import datetime, timezone

        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        for field_name in RESEARCH_CONTEXT_FIELDS:
            if hasattr(record, field_name):
                log_entry[field_name] = getattr(record, field_name)

        return json.dumps(log_entry, ensure_ascii=False)


def get_research_logger(name: str) -> logging.Logger:
    """Get a logger namespaced under the research package."""
    return logging.getLogger(f'rulemaster_api.research.{name}')


def log_research_operation(
    logger: logging.Logger,
    operation: str,
    game_title: Optional[str] = None,
    fingerprint: Optional[str] = None,
    stage: Optional[str] = None,
    level: int = logging.INFO,
    **kwargs
) -> None:
    """Log a research operation with structured context."""
    extra = {}
    if game_title:
        extra['game_title'] = game_title
    if fingerprint:
        extra['fingerprint'] = fingerprint
    if stage:
        extra['stage'] = stage

    extra.update(kwargs)

    logger.log(level, operation, extra=extra)
