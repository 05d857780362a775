from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Optional, Union


def configure_logging(level: Union[int, str, None] = None, json_format: Optional[bool] = None) -> None:
	from settings.config import settings

	if level is None:
		level = settings.LOG_LEVEL
	if isinstance(level, str):
		level = logging.getLevelName(level.upper())
	if json_format is None:
		json_format = settings.LOG_JSON

	dictConfig(
		{
			"version": 1,
			"disable_existing_loggers": False,
			"formatters": {
				"standard": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
				"json": {"()": "statement_parser.json_logger.JsonFormatter"},
			},
			"handlers": {
				"console": {
					"class": "logging.StreamHandler",
					"formatter": "json" if json_format else "standard",
					"level": level,
				}
			},
			"loggers": {
				"": {"handlers": ["console"], "level": level},
				"uvicorn": {"handlers": ["console"], "level": level},
				"sqlalchemy.engine": {"level": logging.WARNING},
			},
		}
	)
