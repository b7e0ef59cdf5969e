from pathlib import Path

import ai_coding_cli.config as config_module
from ai_coding_cli.config import Config


def test_defaults_match_documented_limits(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", tmp_path / "missing.yaml")

    cfg = Config.load()

    assert cfg.agent.max_auto_retry == 3
    assert cfg.agent.max_auto_continue == 10
    assert cfg.context.max_history_messages == 20
    assert cfg.context.recent_tool_messages == 4
    assert cfg.tools.shell.max_output_lines == 50
    assert cfg.agent.think_open_tag == "<think>"


def test_load_prefers_local_config_yaml(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)

    home_cfg = tmp_path / "home_config.yaml"
    home_cfg.write_text("model:\n  model: llama3.2\n", encoding="utf-8")
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", home_cfg)

    local_cfg = tmp_path / "config.yaml"
    local_cfg.write_text(
        (
            "model:\n"
            "  model: qwen2.5-coder:7b\n"
            "agent:\n"
            "  max_auto_retry: 5\n"
        ),
        encoding="utf-8",
    )

    cfg = Config.load()

    assert cfg.model.model == "qwen2.5-coder:7b"
    assert cfg.agent.max_auto_retry == 5


def test_load_falls_back_to_default_path_when_no_local(monkeypatch, tmp_path: Path):
    work = tmp_path / "work"
    work.mkdir()
    monkeypatch.chdir(work)

    home_cfg = tmp_path / "home_config.yaml"
    home_cfg.write_text(
        (
            "tools:\n"
            "  shell:\n"
            "    timeout: 90\n"
            "    languages: [bash]\n"
        ),
        encoding="utf-8",
    )
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", home_cfg)

    cfg = Config.load()

    assert cfg.tools.shell.timeout == 90
    assert cfg.tools.shell.languages == ["bash"]


def test_environment_overrides_nested_values(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", tmp_path / "missing.yaml")
    monkeypatch.setenv("AICLI_MODEL__BASE_URL", "http://gpu-box:11434")

    cfg = Config.load()

    assert cfg.model.base_url == "http://gpu-box:11434"


def test_save_round_trips_through_yaml(tmp_path: Path):
    cfg = Config()
    cfg.agent.auto_execute = True
    cfg.ui.show_thinking = False
    path = tmp_path / "nested" / "config.yaml"

    cfg.save(path)
    loaded = Config.from_yaml(path)

    assert loaded.agent.auto_execute is True
    assert loaded.ui.show_thinking is False


def test_from_yaml_with_missing_file_returns_defaults(tmp_path: Path):
    cfg = Config.from_yaml(tmp_path / "nope.yaml")

    assert cfg.model.provider == "ollama"
