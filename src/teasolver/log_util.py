"""
logging setup, console output plus one json object per line in a log file
"""
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
import json
import logging
import logging.config

# attributes every LogRecord has, everything else was passed via `extra`
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {'message', 'asctime', 'taskName'}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        data = {
            'time': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                data[key] = value
        if record.exc_info:
            data['exc_info'] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


def setup_logging(filename: Optional[Path] = None):
    config_file = Path(__file__).parent / 'log_config.json'
    with config_file.open('r') as f:
        config = json.load(f)

    if filename:
        config['handlers']['file']['filename'] = str(filename)

    logging.getLogger().setLevel(logging.DEBUG)
    logging.config.dictConfig(config)
