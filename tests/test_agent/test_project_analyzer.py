from pathlib import Path

from ai_coding_cli.analyzer import (
    ProjectScan,
    build_file_tree,
    build_quick_context,
    quick_scan_project,
)
from ai_coding_cli.config import AnalyzerConfig


def _touch(path: Path, content: str = "") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def test_quick_scan_skips_excluded_and_hidden_dirs(tmp_path: Path):
    _touch(tmp_path / "package.json", "{}")
    _touch(tmp_path / "src" / "index.js")
    _touch(tmp_path / "src" / "logo.png")
    _touch(tmp_path / "node_modules" / "lib" / "index.js")
    _touch(tmp_path / ".cache" / "data.json")
    _touch(tmp_path / ".github" / "workflows" / "ci.yml")

    scan = quick_scan_project(tmp_path, config=AnalyzerConfig())

    assert scan.files == [".github/workflows/ci.yml", "package.json", "src/index.js"]
    assert scan.dirs == [".github", ".github/workflows", "src"]
    assert scan.key_files == {}


def test_quick_scan_respects_max_depth(tmp_path: Path):
    _touch(tmp_path / "a" / "b" / "c" / "deep.py")
    _touch(tmp_path / "a" / "shallow.py")

    scan = quick_scan_project(tmp_path, max_depth=1, config=AnalyzerConfig())

    assert scan.files == ["a/shallow.py"]


def test_quick_scan_loads_readme_head(tmp_path: Path):
    lines = [f"line {i}" for i in range(100)]
    _touch(tmp_path / "README.md", "\n".join(lines))

    scan = quick_scan_project(tmp_path, config=AnalyzerConfig())

    readme = scan.key_files["README.md"].split("\n")
    assert len(readme) == 60
    assert readme[-1] == "line 59"


def test_build_file_tree():
    tree = build_file_tree(["src/app.py", "src/util/io.py", "README.md"])

    assert tree.split("\n") == [
        "README.md",
        "src/",
        "├── app.py",
        "└── util/",
        "    └── io.py",
    ]


def test_build_file_tree_empty():
    assert build_file_tree([]) == "(no files)"


def test_build_quick_context():
    scan = ProjectScan(root="/work/app", files=["main.py"], key_files={"README.md": "# App"})

    context = build_quick_context(scan)

    assert "--- PROJECT STRUCTURE (/work/app) ---" in context
    assert "Files (1):\nmain.py" in context
    assert "### README.md\n# App" in context
    assert context.rstrip().endswith("--- END OF STRUCTURE ---")
    assert build_quick_context(None) == ""
