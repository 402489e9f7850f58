import logging
import os
from typing import Any, Dict, Optional


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_app_config() -> Dict[str, Any]:
    """Get application configuration from environment variables"""
    return {
        "debug": os.getenv("DEBUG", "False").lower() == "true",
        "log_level": os.getenv("LOG_LEVEL", "INFO"),
        "db_path": os.getenv("TIME_TABLE_DB") or None,
        "default_anneal_steps": int(os.getenv("TIMETABLE_ANNEAL_STEPS", 40_000)),
        "default_seed": int(os.getenv("TIMETABLE_SEED", 42)),
    }


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging once for the Streamlit process.

    DEBUG=true forces debug level regardless of LOG_LEVEL.
    """
    config = get_app_config()
    name = level or ("DEBUG" if config["debug"] else config["log_level"])
    logging.basicConfig(
        level=getattr(logging, str(name).upper(), logging.INFO),
        format=LOG_FORMAT,
    )
