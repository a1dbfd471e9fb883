"""
Heuristic intent routing for forced tool use.

When the model answers without requesting a tool, :class:`HeuristicIntentRouter` guesses which
tool it *should* have used from the operator's message and synthesizes a display-dialect
invocation for it.  Routing is an ordered list of :class:`IntentRule` objects evaluated over the
lower-cased message; the first rule whose predicate holds builds the decision.  When nothing
matches, a broad ``dispatch_agent`` investigation is returned, so the router always acts.

Keywords are checked in English and Japanese.  English keywords match at a word start ("file"
matches "files" but not "profile"); very short tokens such as ``ls`` or ``md`` must stand alone.
"""

import functools
import logging
import os
import random
import re
from dataclasses import dataclass
from typing import (
    Callable,
    Dict,
    List,
    Optional,
    Sequence,
    Tuple,
)

from toolchat.config import settings
from toolchat.core.schema import RoutingDecision
from toolchat.tools.tool_call_parser import format_function_calls

logger = logging.getLogger(__name__)

AGENT_TOOL = "dispatch_agent"

_QUOTED_RE = re.compile(r"「([^」]+)」|\"([^\"]+)\"|'([^']+)'")
_KEYWORD_PHRASE_RE = re.compile(r"([A-Za-z0-9_]+)って(?:単語|キーワード|コード|部分|箇所)")
_FILE_NAME_RE = re.compile(r"([A-Za-z0-9_\-]+\.[A-Za-z0-9]+)")

_DETAIL = ("詳しく", "詳細", "全て", "全部", "調査", "分析", "in detail", "detailed", "thorough",
           "exhaustive", "analy", "investigate")
_SHOW = ("表示", "内容", "見せて", "中身", "開", "show", "view", "display", "content", "open",
         "print")
_FIND = ("探", "検索", "find", "search", "locate", "look for")
_FILE = ("ファイル", "file")
_DIRECTORY = ("ディレクトリ", "フォルダ", "一覧", "directory", "directories", "folder", "list")
_MEMORY = ("memory", "メモリ")
_EDIT = ("update", "edit", "change", "modify", "add", "更新", "編集", "変更", "追加")
_CODE = ("コード", "code", "source")
_USAGE = ("使われている", "used", "usage", "uses", "where", "contain", "occurrence")

_DUMMY_RESPONSES = (
    "Let me look into that.",
    "I'll check the project files for you.",
    "Give me a moment to investigate.",
    "Let me search the project to answer that.",
    "I'll take a look at the files first.",
)


# ---------------------------------------------------------------------------
# Keyword helpers
# ---------------------------------------------------------------------------
@functools.lru_cache(maxsize=None)
def _word_start(keyword: str) -> re.Pattern:
    return re.compile(rf"(?<![a-z0-9]){re.escape(keyword)}")


@functools.lru_cache(maxsize=None)
def _whole_token(token: str) -> re.Pattern:
    return re.compile(rf"(?<![a-z0-9]){re.escape(token)}(?![a-z0-9])")


def mentions(text: str, *keywords: str) -> bool:
    """True if any keyword occurs in *text* (ASCII keywords only at a word start)."""
    for keyword in keywords:
        if keyword.isascii():
            if _word_start(keyword).search(text):
                return True
        elif keyword in text:
            return True
    return False


def has_token(text: str, *tokens: str) -> bool:
    """True if any of *tokens* occurs in *text* as a standalone ASCII token."""
    return any(_whole_token(token).search(text) for token in tokens)


def quoted_term(message: str) -> str:
    """First 「...」, "..." or '...' quoted term in *message*, or ``""``."""
    match = _QUOTED_RE.search(message)
    if not match:
        return ""
    return next((group for group in match.groups() if group), "")


# ---------------------------------------------------------------------------
# Rule context
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class RouteContext:
    """Inputs every rule sees."""

    message: str
    draft: str
    memory_file: str
    project_root: str

    @property
    def text(self) -> str:
        return self.message.lower()

    @property
    def draft_text(self) -> str:
        return self.draft.lower()

    def under_root(self, path: str) -> str:
        return path if os.path.isabs(path) else os.path.join(self.project_root, path)


@dataclass(frozen=True)
class IntentRule:
    """``predicate`` decides whether the rule fires; ``build`` produces the decision."""

    name: str
    predicate: Callable[[RouteContext], bool]
    build: Callable[[RouteContext], RoutingDecision]


def _decision(rule: str, tool: str, intro: str, params: Dict[str, str]) -> RoutingDecision:
    return RoutingDecision(
        tool_name=tool,
        intro_text=intro,
        invocation_markup=format_function_calls(tool, params),
        rule=rule,
    )


def file_pattern(text: str) -> Tuple[str, str]:
    """(label, glob pattern) for the file type mentioned in lower-cased *text*."""
    if mentions(text, "マークダウン", "markdown") or has_token(text, "md"):
        return "markdown", "**/*.md"
    if has_token(text, "json"):
        return "JSON", "**/*.json"
    if mentions(text, "javascript") or has_token(text, "js"):
        return "JavaScript", "**/*.js"
    if mentions(text, "typescript") or has_token(text, "ts"):
        return "TypeScript", "**/*.ts"
    if mentions(text, "python") or has_token(text, "py"):
        return "Python", "**/*.py"
    if has_token(text, "yaml", "yml"):
        return "YAML", "**/*.{yaml,yml}"
    if has_token(text, "html"):
        return "HTML", "**/*.html"
    if has_token(text, "css"):
        return "CSS", "**/*.css"
    if "readme" in text:
        return "README", "**/README.md"
    return "", "**/*"


def search_term(ctx: RouteContext) -> str:
    """Best guess at what the operator wants to grep for, or ``""``."""
    term = quoted_term(ctx.message)
    if term:
        return term
    phrase = _KEYWORD_PHRASE_RE.search(ctx.message)
    if phrase:
        return phrase.group(1)

    text = ctx.text
    if "logger" in text:
        return "logger"
    if mentions(text, "関数", "function"):
        return "function"
    if mentions(text, "クラス", "class"):
        return "class"
    for keyword in ("import", "export", "tool"):
        if mentions(text, keyword):
            return keyword
    return ""


# ---------------------------------------------------------------------------
# Rules, in precedence order
# ---------------------------------------------------------------------------
def _is_memory_request(ctx: RouteContext) -> bool:
    text = ctx.text
    if ctx.memory_file and ctx.memory_file.lower() in text:
        return True
    return mentions(text, *_MEMORY) and mentions(text, *_EDIT)


def _memory_file(ctx: RouteContext) -> RoutingDecision:
    return _decision(
        "memory_file",
        "GlobTool",
        f"Looking for the memory file {ctx.memory_file} first.",
        {"pattern": f"**/{ctx.memory_file}"},
    )


def _is_readme_view(ctx: RouteContext) -> bool:
    return "readme" in ctx.text and mentions(ctx.text, *_SHOW)


def _readme_view(ctx: RouteContext) -> RoutingDecision:
    return _decision(
        "readme_view",
        "GlobTool",
        "Locating the README file first.",
        {"pattern": "README.md", "path": ctx.project_root},
    )


def _is_markdown_view(ctx: RouteContext) -> bool:
    return _is_markdown(ctx) and mentions(ctx.text, *_SHOW)


def _markdown_view(ctx: RouteContext) -> RoutingDecision:
    return _decision(
        "markdown_view",
        "GlobTool",
        "Locating the markdown files first.",
        {"pattern": "**/*.md", "path": ctx.project_root},
    )


def _is_detailed_analysis(ctx: RouteContext) -> bool:
    return mentions(ctx.text, *_DETAIL)


def _analysis_focus(text: str, target: str) -> str:
    if mentions(text, "構造", "構成", "structure", "layout"):
        return f"analyse the structure of the {target}, explaining the directory layout and how the main files relate."
    if mentions(text, "概要", "まとめ", "overview", "summar"):
        return f"get the big picture of the {target} and summarize its main contents."
    if mentions(text, "重要", "主要", "important", "key"):
        return f"extract the most important information and settings from the {target} and explain their impact."
    if mentions(text, "関数", "メソッド", "function", "method"):
        return f"find the functions and methods defined in the {target} and explain their purpose and usage."
    if mentions(text, "インポート", "依存", "import", "depend"):
        return f"analyse the imports and dependencies of the {target} and the external libraries it relies on."
    return (
        f"investigate the {target} in detail and report:\n"
        "1. Where the files are and how they are distributed\n"
        "2. An overview of their contents and key points\n"
        "3. How the files relate to each other\n"
        "4. Anything that looks particularly important"
    )


def _detailed_analysis(ctx: RouteContext) -> RoutingDecision:
    text = ctx.text
    label, pattern = file_pattern(text)
    if not label and mentions(text, "設定", "config"):
        label, pattern = "configuration", "**/*.{json,yaml,yml,toml,ini,cfg,conf}"
    elif not label and (mentions(text, "ソース") or has_token(text, "src")):
        label, pattern = "source", "src/**/*"

    target = f"{label} files" if label else "project"
    prompt = (
        f"Search the project for files matching {pattern}, then {_analysis_focus(text, target)}\n\n"
        "Start with GlobTool to find the relevant files, read them with ViewTool where needed and "
        "use GrepTool to trace how they relate. Keep the summary concise and highlight the key points."
    )
    intro = f"Analysing the {target} in detail." if label else "Analysing the project in detail."
    return _decision("detailed_analysis", AGENT_TOOL, intro, {"prompt": prompt})


def _is_markdown(ctx: RouteContext) -> bool:
    text = ctx.text
    return mentions(text, "マークダウン", "markdown") or has_token(text, "md") or ".md" in text


def _markdown_files(ctx: RouteContext) -> RoutingDecision:
    return _decision(
        "markdown_files", "GlobTool", "Searching for markdown files.", {"pattern": "**/*.md"}
    )


def _is_file_search(ctx: RouteContext) -> bool:
    return mentions(ctx.text, *_FILE) and mentions(ctx.text, *_FIND)


def _file_search(ctx: RouteContext) -> RoutingDecision:
    label, pattern = file_pattern(ctx.text)
    intro = f"Searching for {label} files." if label else "Searching for files first."
    return _decision("file_search", "GlobTool", intro, {"pattern": pattern})


def _is_content_search(ctx: RouteContext) -> bool:
    text = ctx.text
    concept = (
        "logger" in text
        or has_token(text, "grep")
        or (mentions(text, *_CODE) and mentions(text, *_USAGE, *_FIND))
        or (mentions(text, "内容") and mentions(text, "検索"))
    )
    return concept and bool(search_term(ctx))


def _content_search(ctx: RouteContext) -> RoutingDecision:
    term = search_term(ctx)
    return _decision(
        "content_search",
        "GrepTool",
        f'Searching the code for "{term}".',
        {"pattern": term, "include": "*.{py,js,ts,md,json}"},
    )


def _is_directory_listing(ctx: RouteContext) -> bool:
    return mentions(ctx.text, *_DIRECTORY) or has_token(ctx.text, "ls")


def _directory_listing(ctx: RouteContext) -> RoutingDecision:
    text = ctx.text
    target = ""
    quoted = quoted_term(ctx.message)
    if quoted:
        target = ctx.under_root(quoted)
    else:
        target = next((word for word in ctx.message.split() if "/" in word or "\\" in word), "")
        if not target:
            for sub in ("src", "lib", "tests", "test", "docs"):
                if has_token(text, sub):
                    target = ctx.under_root(sub)
                    break
    target = target or ctx.project_root
    label = "the current" if target == ctx.project_root else target
    return _decision(
        "directory_listing", "LSTool", f"Listing the contents of {label} directory.", {"path": target}
    )


def _is_file_view(ctx: RouteContext) -> bool:
    return _FILE_NAME_RE.search(ctx.message) is not None


def _file_view(ctx: RouteContext) -> RoutingDecision:
    match = _FILE_NAME_RE.search(ctx.message)
    file_name = match.group(1) if match else ""
    return _decision(
        "file_view",
        "ViewTool",
        f"Checking the contents of {file_name}.",
        {"file_path": ctx.under_root(file_name)},
    )


def _is_package_manifest(ctx: RouteContext) -> bool:
    return "package.json" in ctx.text or "package.json" in ctx.draft_text


def _package_manifest(ctx: RouteContext) -> RoutingDecision:
    return _decision(
        "package_manifest",
        "GlobTool",
        "Searching for package.json files.",
        {"pattern": "**/package.json"},
    )


def _broad_investigation(_ctx: RouteContext) -> RoutingDecision:
    prompt = (
        "Collect the information needed to answer the user's question:\n\n"
        "1. List the main directories with LSTool to understand the project layout.\n"
        "2. Read important configuration files (pyproject.toml, package.json, ...) with ViewTool.\n"
        "3. Read documentation such as README.md if present.\n"
        "4. Search for keywords related to the question with GrepTool.\n"
        "5. Organize what you found and answer the question.\n\n"
        "Combine GlobTool, GrepTool, ViewTool and LSTool as needed."
    )
    return _decision(
        "default", AGENT_TOOL, "Searching the project to gather information.", {"prompt": prompt}
    )


DEFAULT_RULES: Tuple[IntentRule, ...] = (
    IntentRule("memory_file", _is_memory_request, _memory_file),
    IntentRule("readme_view", _is_readme_view, _readme_view),
    IntentRule("markdown_view", _is_markdown_view, _markdown_view),
    IntentRule("detailed_analysis", _is_detailed_analysis, _detailed_analysis),
    IntentRule("markdown_files", _is_markdown, _markdown_files),
    IntentRule("file_search", _is_file_search, _file_search),
    IntentRule("content_search", _is_content_search, _content_search),
    IntentRule("directory_listing", _is_directory_listing, _directory_listing),
    IntentRule("file_view", _is_file_view, _file_view),
    IntentRule("package_manifest", _is_package_manifest, _package_manifest),
)


class HeuristicIntentRouter:
    """First-match router from a natural-language request to a tool invocation."""

    def __init__(
        self,
        rules: Sequence[IntentRule] = DEFAULT_RULES,
        memory_file: Optional[str] = None,
        project_root: Optional[str] = None,
    ) -> None:
        self.rules: List[IntentRule] = list(rules)
        self.memory_file = memory_file or os.path.basename(settings.MEMORY_FILE)
        self.project_root = project_root or os.path.abspath(settings.PROJECT_ROOT)

    def decide(self, message: str, draft_response: str = "") -> RoutingDecision:
        """Return the decision of the first matching rule, or the broad default."""
        ctx = RouteContext(
            message=message,
            draft=draft_response or "",
            memory_file=self.memory_file,
            project_root=self.project_root,
        )
        for rule in self.rules:
            if rule.predicate(ctx):
                logger.debug("Intent rule '%s' matched", rule.name)
                return rule.build(ctx)
        logger.debug("No intent rule matched; using broad investigation")
        return _broad_investigation(ctx)


def dummy_response(rng: Optional[random.Random] = None) -> str:
    """A canned acknowledgement used when the real model is not called; deliberately random."""
    return (rng or random).choice(_DUMMY_RESPONSES)
