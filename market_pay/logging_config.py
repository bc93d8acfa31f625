from __future__ import annotations

import json
import logging
import logging.config
import re
from typing import Any

from market_pay.config import settings

# Share links grant access to a vendor dashboard: /v/<token>/...
_SHARE_PATH_RE = re.compile(r'(/v/)([A-Za-z0-9_-]{8,})')


def redact_share_tokens(text: str) -> str:
    return _SHARE_PATH_RE.sub(lambda match: match.group(1) + '[REDACTED]', text)


class ShareTokenFilter(logging.Filter):
    """Masks vendor share tokens in log messages and their format args (uvicorn access lines included)."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact_share_tokens(record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(redact_share_tokens(arg) if isinstance(arg, str) else arg for arg in record.args)
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            'level': record.levelname,
            'time': self.formatTime(record, datefmt='%Y-%m-%dT%H:%M:%S%z'),
            'logger': record.name,
            'message': record.getMessage(),
        }
        if record.exc_info:
            payload['exc_info'] = self.formatException(record.exc_info)
        extra = getattr(record, 'extra', None)
        if isinstance(extra, dict):
            payload.update(extra)
        return json.dumps(payload, ensure_ascii=False, default=str)


def build_logging_config(level: str, fmt: str) -> dict[str, Any]:
    level = level.upper()
    formatter = 'json' if fmt.lower() == 'json' else 'plain'
    return {
        'version': 1,
        'disable_existing_loggers': False,
        'filters': {'share_tokens': {'()': ShareTokenFilter}},
        'formatters': {
            'json': {'()': JsonFormatter},
            'plain': {'format': '%(asctime)s %(levelname)s [%(name)s] %(message)s'},
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'level': level,
                'stream': 'ext://sys.stdout',
                'formatter': formatter,
                'filters': ['share_tokens'],
            },
        },
        'root': {'level': level, 'handlers': ['console']},
        'loggers': {
            'sqlalchemy.engine': {'level': 'WARNING'},
            'uvicorn.access': {
                'level': 'WARNING' if level != 'DEBUG' else 'INFO',
                'handlers': ['console'],
                'propagate': False,
            },
        },
    }


def setup_logging(level: str | None = None, fmt: str | None = None) -> None:
    level = level or settings.log_level
    fmt = fmt or settings.log_format
    logging.config.dictConfig(build_logging_config(level, fmt))
    logging.getLogger(__name__).debug('logging configured', extra={'extra': {'level': level, 'format': fmt}})
