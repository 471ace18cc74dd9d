from __future__ import annotations

import logging

from flask import Flask

DEV_FORMAT = "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d: %(message)s"
PROD_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(app: Flask) -> None:
    level = _coerce_level(app.config.get("LOG_LEVEL", "DEBUG" if app.debug else "INFO"))
    app.logger.setLevel(level)

    # Service modules log under the "ledger" namespace
    ledger_logger = logging.getLogger("ledger")
    ledger_logger.setLevel(level)
    if not ledger_logger.handlers:
        ledger_logger.addHandler(logging.StreamHandler())

    if level > logging.DEBUG:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    is_production = app.config.get("ENV") == "production" and not app.debug
    formatter = logging.Formatter(PROD_FORMAT if is_production else DEV_FORMAT)
    for handler in ledger_logger.handlers:
        handler.setFormatter(formatter)
    for handler in app.logger.handlers:
        handler.setFormatter(formatter)


def _coerce_level(value) -> int:
    if isinstance(value, int):
        return value
    level = logging.getLevelName(str(value).upper())
    return level if isinstance(level, int) else logging.INFO
