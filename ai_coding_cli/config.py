"""Configuration management for AI Coding CLI."""

from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Paths
DEFAULT_CONFIG_PATH = Path("~/.ai-coding-cli/config.yaml").expanduser()
DEFAULT_DB_PATH = Path("~/.ai-coding-cli/conversations.db").expanduser()
DEFAULT_LOG_DIR = Path("~/.ai-coding-cli/logs").expanduser()
LOCAL_CONFIG_FILENAME = "config.yaml"

DEFAULT_SYSTEM_PROMPT = """You are an AUTONOMOUS coding agent running inside a terminal.
You propose shell commands in fenced ```powershell or ```bash blocks; they are executed
for you and their results are sent back. Be concise but precise.

## METHOD
1. VERIFY BEFORE ACTING: check that a path exists and read a file before editing it.
2. ONE command block per reply: send a command, wait for its result, then take the next step.
3. Sequence: CHECK -> READ -> ACT -> WAIT FOR RESULT -> REACT.

## WHEN A COMMAND FAILS
1. Classify the error: missing path / syntax error / permission denied / unknown command /
   bad parameter / timeout.
2. Investigate: print the working directory, test the path, list the directory.
3. Fix the CAUSE, not the symptom.
4. NEVER repeat the exact command that failed; always change the approach.
5. If two repair attempts did not help, ask the user.

## REPLY MODES
- Conversation ("hi", "what can you do?"): answer naturally, WITHOUT commands.
- Information ("compare X and Y"): show it in the reply, do not create files.
- Tasks ("build an app", "fix the bug"): act autonomously, step by step.

## FORMAT
- Longer analysis goes inside <think>...</think>.
- One sentence on what you do -> command -> analysis of the result -> next step.
"""


class ModelConfig(BaseModel):
    """Model configuration."""

    provider: str = "ollama"
    model: str = "qwen2.5-coder:32b"
    base_url: str = "http://127.0.0.1:11434"
    temperature: float = 0.7
    max_tokens: int = 4096
    api_key: str = ""
    request_timeout: float = 300.0


class ContextConfig(BaseModel):
    """Request window configuration."""

    max_history_messages: int = 20
    recent_tool_messages: int = 4
    compress_min_lines: int = 15
    compress_head_lines: int = 3
    compress_tail_lines: int = 5


class AgentConfig(BaseModel):
    """Turn controller configuration."""

    max_auto_retry: int = 3
    max_auto_continue: int = 10
    auto_execute: bool = False
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    think_open_tag: str = "<think>"
    think_close_tag: str = "</think>"


class ShellToolConfig(BaseModel):
    """Shell command runner configuration."""

    timeout: int = 30
    long_timeout: int = 300
    executable: str = ""
    max_output_lines: int = 50
    languages: list[str] = [
        "powershell",
        "ps1",
        "pwsh",
        "bash",
        "sh",
        "shell",
    ]
    long_running_patterns: list[str] = [
        "npm install",
        "npm ci",
        "yarn install",
        "pnpm install",
        "pip install",
        "poetry install",
        "uv sync",
        "git clone",
        "cargo build",
        "docker build",
        "docker pull",
        "apt-get install",
        "Install-Module",
        "dotnet restore",
    ]
    dangerous: list[str] = [
        "Remove-Item",
        "rm ",
        "del ",
        "rmdir",
        "Format-Volume",
        "Clear-Disk",
        "Stop-Process",
        "kill ",
        "Stop-Service",
        "Restart-Service",
        "Set-ExecutionPolicy",
        "Invoke-Expression",
        "iex ",
        "New-Service",
        "Remove-Service",
        "reg delete",
        "reg add",
        "net user",
        "net localgroup",
        "schtasks",
        "shutdown",
        "Restart-Computer",
        "Stop-Computer",
    ]
    blocked: list[str] = [
        r"rm -rf /$",
        r"rm -rf /\*",
        "mkfs",
        ":(){:|:&};:",
    ]
    file_modifying: list[str] = [
        "Out-File",
        "Set-Content",
        "Add-Content",
        "New-Item",
        "Remove-Item",
        "Move-Item",
        "Copy-Item",
        "Rename-Item",
        "mkdir",
        "touch",
        "mv ",
        "cp ",
        "rm ",
        "tee ",
        " > ",
        " >> ",
        "git checkout",
        "git clone",
        "npm init",
        "npm install",
    ]


class ToolsConfig(BaseModel):
    """Tools configuration."""

    shell: ShellToolConfig = Field(default_factory=ShellToolConfig)


class InputConfig(BaseModel):
    """User input validation limits."""

    max_length: int = 10000
    warn_length: int = 5000


class AnalyzerConfig(BaseModel):
    """Project structure scan configuration."""

    max_depth: int = 3
    excluded_dirs: list[str] = [
        "node_modules",
        ".git",
        "dist",
        "build",
        "coverage",
        "__pycache__",
        ".next",
        ".nuxt",
        "vendor",
        ".venv",
    ]
    extensions: list[str] = [
        ".js", ".ts", ".jsx", ".tsx", ".py", ".json", ".md",
        ".yaml", ".yml", ".css", ".html", ".sql", ".ps1",
        ".sh", ".bat", ".cmd", ".toml",
    ]
    key_files: list[str] = [
        "package.json",
        "pyproject.toml",
        "README.md",
        ".env.example",
        "Dockerfile",
        "Makefile",
    ]


class SessionConfig(BaseModel):
    """Conversation persistence configuration."""

    path: str = str(DEFAULT_DB_PATH)
    auto_save: bool = True


class UIConfig(BaseModel):
    """UI configuration."""

    show_thinking: bool = True
    show_stats: bool = True
    colors: bool = True


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "WARNING"
    format: str = "console"
    to_file: bool = False
    directory: str = str(DEFAULT_LOG_DIR)


class Config(BaseSettings):
    """Main configuration for AI Coding CLI."""

    model: ModelConfig = Field(default_factory=ModelConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    input: InputConfig = Field(default_factory=InputConfig)
    analyzer: AnalyzerConfig = Field(default_factory=AnalyzerConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    ui: UIConfig = Field(default_factory=UIConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="AICLI_",
        env_file=".env",
        env_nested_delimiter="__",
    )

    @classmethod
    def resolve_default_config_path(cls) -> Path:
        """Resolve default config path with local-first precedence."""
        local_path = Path.cwd() / LOCAL_CONFIG_FILENAME
        if local_path.exists():
            return local_path
        return DEFAULT_CONFIG_PATH

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> "Config":
        """Load configuration from YAML file."""
        config_path = Path(path).expanduser() if path else cls.resolve_default_config_path()

        if not config_path.exists():
            return cls()

        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    @classmethod
    def load(cls) -> "Config":
        """Load configuration; environment variables are applied by pydantic-settings."""
        return cls.from_yaml()

    def save(self, path: Path | str | None = None) -> None:
        """Save configuration to YAML file."""
        config_path = Path(path) if path else DEFAULT_CONFIG_PATH
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(exclude_none=True)

        with open(config_path, "w", encoding="utf-8") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
