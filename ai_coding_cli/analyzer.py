"""Quick project structure scan used as system prompt context."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from ai_coding_cli.config import AnalyzerConfig, get_config
from ai_coding_cli.logging import get_logger

log = get_logger(__name__)

MAX_SCAN_FILES = 200
KEY_FILE_MAX_LINES = 60


@dataclass
class ProjectScan:
    """File and directory listing of a project, relative to ``root``."""

    root: str
    files: list[str] = field(default_factory=list)
    dirs: list[str] = field(default_factory=list)
    key_files: dict[str, str] = field(default_factory=dict)


def quick_scan_project(
    root: str | Path,
    max_depth: int | None = None,
    config: AnalyzerConfig | None = None,
) -> ProjectScan:
    """Scan a project tree without reading file contents.

    Excluded and hidden directories are skipped (``.github`` is kept). Only
    files with a configured extension or a key file name are listed. Key
    files (README) are loaded, first lines only.
    """
    config = config or get_config().analyzer
    if max_depth is None:
        max_depth = config.max_depth
    root_path = Path(root).expanduser().resolve()
    scan = ProjectScan(root=str(root_path))

    excluded = set(config.excluded_dirs)
    extensions = {ext.lower() for ext in config.extensions}
    key_names = set(config.key_files)

    def walk(directory: Path, depth: int) -> None:
        if depth > max_depth or len(scan.files) >= MAX_SCAN_FILES:
            return
        try:
            entries = sorted(directory.iterdir(), key=lambda p: p.name)
        except OSError as e:
            log.debug("Cannot read directory", path=str(directory), error=str(e))
            return
        for entry in entries:
            if len(scan.files) >= MAX_SCAN_FILES:
                break
            rel = entry.relative_to(root_path).as_posix()
            if entry.is_dir():
                if entry.name in excluded:
                    continue
                if entry.name.startswith(".") and entry.name != ".github":
                    continue
                scan.dirs.append(rel)
                walk(entry, depth + 1)
            elif entry.is_file():
                if entry.suffix.lower() in extensions or entry.name in key_names:
                    scan.files.append(rel)

    walk(root_path, 0)

    readme = next((f for f in scan.files if f.lower() == "readme.md"), None)
    if readme:
        try:
            with open(root_path / readme, encoding="utf-8", errors="replace") as f:
                lines = f.read().split("\n")[:KEY_FILE_MAX_LINES]
            scan.key_files[readme] = "\n".join(lines)
        except OSError as e:
            log.debug("Cannot read key file", path=readme, error=str(e))

    log.debug("Project scanned", root=scan.root, files=len(scan.files), dirs=len(scan.dirs))
    return scan


def build_file_tree(paths: Iterable[str]) -> str:
    """Render relative paths as an indented tree."""
    tree: dict[str, Any] = {}
    for path in paths:
        node = tree
        for part in path.replace("\\", "/").split("/"):
            if part:
                node = node.setdefault(part, {})
    if not tree:
        return "(no files)"

    lines: list[str] = []

    def render(node: dict[str, Any], prefix: str, is_root: bool) -> None:
        keys = sorted(node)
        for idx, key in enumerate(keys):
            is_last = idx == len(keys) - 1
            connector = "" if is_root else ("└── " if is_last else "├── ")
            child_prefix = "" if is_root else prefix + ("    " if is_last else "│   ")
            suffix = "/" if node[key] else ""
            lines.append(f"{'' if is_root else prefix}{connector}{key}{suffix}")
            if node[key]:
                render(node[key], child_prefix, False)

    render(tree, "", True)
    return "\n".join(lines)


def build_quick_context(scan: ProjectScan | None) -> str:
    """Format a scan for appending to the system prompt."""
    if scan is None:
        return ""
    parts = [
        f"\n\n--- PROJECT STRUCTURE ({scan.root}) ---",
        f"Files ({len(scan.files)}):",
        build_file_tree(scan.files),
    ]
    if scan.key_files:
        parts.append("\n--- KEY FILES ---")
        for name, content in scan.key_files.items():
            parts.append(f"\n### {name}\n{content}")
    parts.append("--- END OF STRUCTURE ---\n")
    return "\n".join(parts)
