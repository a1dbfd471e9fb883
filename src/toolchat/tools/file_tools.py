"""
Built-in tools: file search, content search, file view, editing, shell execution, directory listing.

Relative paths are resolved against ``settings.PROJECT_ROOT``.  Tools raise on failure; the tool
executor turns those exceptions into error results for the model.
"""

import logging
import os
import re
import subprocess
from pathlib import Path
from typing import (
    Any,
    Dict,
    List,
)

from toolchat.config import settings
from toolchat.tools import register_tool

logger = logging.getLogger(__name__)

_IGNORED_DIRS = {"node_modules", ".git"}
_LS_IGNORED = ["node_modules", ".git", "dist", "build", "__pycache__"]
_DEFAULT_INCLUDE = "*.{py,js,ts,md,json,toml,yaml,yml,html,css,txt}"
_MAX_MATCHES_PER_FILE = 5
_CONTEXT_LINES = 2


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _project_root() -> Path:
    return Path(settings.PROJECT_ROOT).expanduser().resolve()


def _resolve(path: str | None) -> Path:
    if not path:
        return _project_root()
    candidate = Path(path).expanduser()
    return candidate if candidate.is_absolute() else _project_root() / candidate


def _relative(path: Path) -> str:
    try:
        return os.path.relpath(path, _project_root())
    except ValueError:  # different drive on Windows
        return str(path)


def expand_braces(pattern: str) -> List[str]:
    """Expand ``{a,b}`` sets the way shells do: ``*.{js,ts}`` -> ``["*.js", "*.ts"]``."""
    match = re.search(r"\{([^{}]*)\}", pattern)
    if not match:
        return [pattern]
    head, tail = pattern[: match.start()], pattern[match.end() :]
    expanded: List[str] = []
    for option in match.group(1).split(","):
        expanded.extend(expand_braces(head + option + tail))
    return expanded


def _glob(base: Path, pattern: str) -> List[Path]:
    found: Dict[Path, None] = {}  # ordered set
    for variant in expand_braces(pattern):
        root, relative = base, variant
        if Path(variant).is_absolute():
            root = Path(Path(variant).anchor)
            relative = str(Path(variant).relative_to(root))
        for match in sorted(root.glob(relative)):
            if _IGNORED_DIRS.intersection(match.parts):
                continue
            found.setdefault(match, None)
    return list(found)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------
@register_tool("GlobTool")
def glob_tool(pattern: str, path: str | None = None) -> List[Dict[str, str]]:
    """Find files whose path matches a glob pattern such as **/*.md or src/**/*.{js,ts}."""
    base = _resolve(path)
    if not base.is_dir():
        raise FileNotFoundError(f"Search path does not exist: {base}")

    logger.debug("GlobTool: searching %s for %s", base, pattern)
    results = [
        {"file_path": str(match), "relative_path": _relative(match)}
        for match in _glob(base, pattern)
        if match.is_file()
    ]
    logger.debug("GlobTool: %d result(s)", len(results))
    return results


@register_tool("GrepTool")
def grep_tool(
    pattern: str, path: str | None = None, include: str = _DEFAULT_INCLUDE
) -> List[Dict[str, Any]]:
    """Search file contents for a regular expression and return matching excerpts."""
    base = _resolve(path)
    if not base.is_dir():
        raise FileNotFoundError(f"Search path does not exist: {base}")

    try:
        regex = re.compile(pattern)
    except re.error:
        regex = re.compile(re.escape(pattern))

    # A bare file pattern searches the whole tree
    include_pattern = include if "/" in include else f"**/{include}"

    results: List[Dict[str, Any]] = []
    for file_path in _glob(base, include_pattern):
        if not file_path.is_file():
            continue
        try:
            lines = file_path.read_text(encoding="utf-8").splitlines()
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("GrepTool: skipping %s: %s", file_path, exc)
            continue

        hits = [idx for idx, line in enumerate(lines) if regex.search(line)]
        if not hits:
            continue

        excerpts = []
        for idx in hits[:_MAX_MATCHES_PER_FILE]:
            start = max(0, idx - _CONTEXT_LINES)
            end = min(len(lines), idx + _CONTEXT_LINES + 1)
            excerpts.append({"line": idx + 1, "excerpt": "\n".join(lines[start:end])})
        results.append(
            {
                "file_path": str(file_path),
                "relative_path": _relative(file_path),
                "match_count": len(hits),
                "matches": excerpts,
            }
        )

    logger.debug("GrepTool: %d file(s) matched %r", len(results), pattern)
    return results


@register_tool("ViewTool")
def view_tool(file_path: str, offset: int | None = None, limit: int | None = None) -> Dict[str, str]:
    """Show the contents of a file, optionally a window of lines starting at offset."""
    target = _resolve(file_path)
    if not target.is_file():
        raise FileNotFoundError(f"File not found: {target}")

    content = target.read_text(encoding="utf-8")
    if offset is not None or limit is not None:
        lines = content.split("\n")
        start = int(offset or 0)
        count = int(limit or 2000)
        content = "\n".join(lines[start : start + count])
        if start + count < len(lines):
            content += "\n... (continued)"
    return {"file_path": str(target), "content": content}


@register_tool("EditTool")
def edit_tool(file_path: str, old_string: str, new_string: str) -> Dict[str, Any]:
    """Replace the first occurrence of old_string with new_string; empty old_string creates the file."""
    target = _resolve(file_path)

    if not target.exists() and old_string == "":
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(new_string, encoding="utf-8")
        logger.info("Created file %s", target)
        return {"success": True, "file_path": str(target), "created": True}

    if not target.is_file():
        raise FileNotFoundError(f"File not found: {target}")

    content = target.read_text(encoding="utf-8")
    if old_string == "":
        updated = new_string
    elif old_string not in content:
        raise ValueError(f"old_string not found in {target}")
    else:
        updated = content.replace(old_string, new_string, 1)

    target.write_text(updated, encoding="utf-8")
    logger.info("Edited file %s", target)
    return {"success": True, "file_path": str(target), "created": False}


@register_tool("ReplaceTool")
def replace_tool(file_path: str, content: str) -> Dict[str, Any]:
    """Overwrite a file with the given content, creating it if needed."""
    target = _resolve(file_path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content, encoding="utf-8")
    logger.info("Wrote file %s", target)
    return {"success": True, "file_path": str(target)}


@register_tool("BashTool")
def bash_tool(command: str, timeout: float = 30.0) -> Dict[str, Any]:
    """Run a shell command in the project root and return its output."""
    logger.debug("BashTool: running %r", command)
    completed = subprocess.run(  # pylint: disable=subprocess-run-check
        command,
        shell=True,
        cwd=_project_root(),
        capture_output=True,
        text=True,
        timeout=float(timeout),
    )
    if completed.stderr:
        logger.warning("Command %r wrote to stderr: %s", command, completed.stderr.strip())
    return {
        "output": completed.stdout,
        "error": completed.stderr or None,
        "exit_code": completed.returncode,
    }


@register_tool("LSTool")
def ls_tool(path: str = ".", ignore: List[str] | None = None) -> Dict[str, Any]:
    """List the entries of a directory; sub-directories end with a slash."""
    target = _resolve(path)
    if not target.is_dir():
        raise FileNotFoundError(f"Directory not found: {target}")

    ignored = _LS_IGNORED + list(ignore or [])
    entries = []
    for entry in sorted(target.iterdir(), key=lambda p: p.name):
        if any(pattern in entry.name for pattern in ignored):
            continue
        entries.append(f"{entry.name}/" if entry.is_dir() else entry.name)
    return {"path": str(target), "entries": entries}
