# backend/ledger/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/ledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///ledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Adjustments larger than this share of current quantity are flagged
    RED_FLAG_THRESHOLD_PERCENT = float(os.environ.get("RED_FLAG_THRESHOLD_PERCENT", "10"))

    # "uuid" (default) or "sequence" (per-location counter)
    BARCODE_STRATEGY = os.environ.get("BARCODE_STRATEGY", "uuid")
    BARCODE_LENGTH = 16

    WASTE_TYPE_NAME = os.environ.get("WASTE_TYPE_NAME", "Waste")
    DEFAULT_LOT_TYPE = os.environ.get("DEFAULT_LOT_TYPE", "Lot of Dry Flower")
