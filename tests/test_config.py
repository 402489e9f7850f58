import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config import configure_logging, get_app_config


def test_defaults(monkeypatch):
    for name in ("DEBUG", "LOG_LEVEL", "TIME_TABLE_DB", "TIMETABLE_ANNEAL_STEPS", "TIMETABLE_SEED"):
        monkeypatch.delenv(name, raising=False)

    config = get_app_config()
    assert config["debug"] is False
    assert config["log_level"] == "INFO"
    assert config["db_path"] is None
    assert config["default_anneal_steps"] == 40_000
    assert config["default_seed"] == 42


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("DEBUG", "True")
    monkeypatch.setenv("TIME_TABLE_DB", str(tmp_path / "x.db"))
    monkeypatch.setenv("TIMETABLE_ANNEAL_STEPS", "5000")
    monkeypatch.setenv("TIMETABLE_SEED", "7")

    config = get_app_config()
    assert config["debug"] is True
    assert config["db_path"] == str(tmp_path / "x.db")
    assert config["default_anneal_steps"] == 5000
    assert config["default_seed"] == 7


def test_configure_logging_accepts_level_names():
    # basicConfig is a no-op once the root logger has handlers; it must not raise either way
    configure_logging("warning")
    configure_logging("not-a-level")
    assert logging.getLogger("timetable").getEffectiveLevel() >= logging.DEBUG
