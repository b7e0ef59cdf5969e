import json
from datetime import date
from pathlib import Path

from ai_coding_cli.config import Config, set_config
from ai_coding_cli.logging import close_log_file, configure_logging, get_logger, log_file_path


def test_log_file_path_is_per_day(tmp_path: Path):
    assert log_file_path(tmp_path, date(2026, 3, 1)) == tmp_path / "debug-2026-03-01.log"


def test_file_logging_writes_json_lines(tmp_path: Path):
    cfg = Config()
    cfg.logging.to_file = True
    cfg.logging.directory = str(tmp_path / "logs")
    set_config(cfg)
    try:
        configure_logging("DEBUG")
        get_logger("tests").info("Round trip started", round_trip=1)
        get_logger("tests").debug("Window built", size=3)
    finally:
        close_log_file()
        set_config(Config())
        configure_logging()

    lines = log_file_path(tmp_path / "logs").read_text(encoding="utf-8").splitlines()
    records = [json.loads(line) for line in lines]
    assert records[0]["event"] == "Round trip started"
    assert records[0]["round_trip"] == 1
    assert records[0]["level"] == "info"
    assert records[1]["size"] == 3


def test_level_filter_drops_lower_levels(tmp_path: Path):
    cfg = Config()
    cfg.logging.to_file = True
    cfg.logging.directory = str(tmp_path)
    set_config(cfg)
    try:
        configure_logging("WARNING")
        get_logger("tests").info("hidden")
        get_logger("tests").warning("shown")
    finally:
        close_log_file()
        set_config(Config())
        configure_logging()

    content = log_file_path(tmp_path).read_text(encoding="utf-8")
    assert "shown" in content
    assert "hidden" not in content
