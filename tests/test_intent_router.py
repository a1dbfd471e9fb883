"""Tests for the heuristic intent router used in forced tool-use mode."""

import random

import pytest

from toolchat.agent.intent_router import (
    AGENT_TOOL,
    DEFAULT_RULES,
    HeuristicIntentRouter,
    dummy_response,
    file_pattern,
    has_token,
    mentions,
)
from toolchat.tools.tool_call_parser import parse_function_calls


@pytest.fixture
def router() -> HeuristicIntentRouter:
    return HeuristicIntentRouter(memory_file="CLAUDE.md", project_root="/proj")


def _params(decision):
    calls = parse_function_calls(decision.invocation_markup)
    assert len(calls) == 1
    assert calls[0].name == decision.tool_name
    return calls[0].args


def test_readme_request_in_japanese(router: HeuristicIntentRouter) -> None:
    """Asking to see the README locates it with GlobTool."""

    decision = router.decide("READMEの内容を見せて")

    assert decision.rule == "readme_view"
    assert decision.tool_name == "GlobTool"
    assert _params(decision) == {"pattern": "README.md", "path": "/proj"}
    assert decision.invocation_markup.startswith("<function_calls>")


@pytest.mark.parametrize(
    "message, rule, tool",
    [
        ("Update the memory with our build steps", "memory_file", "GlobTool"),
        ("CLAUDE.md を更新して", "memory_file", "GlobTool"),
        ("Show me the README", "readme_view", "GlobTool"),
        ("マークダウンの内容を詳しく見せて", "markdown_view", "GlobTool"),
        ("マークダウンファイルを詳しく調査して", "detailed_analysis", AGENT_TOOL),
        ("Find all markdown files", "markdown_files", "GlobTool"),
        ("jsonファイルを検索して", "file_search", "GlobTool"),
        ("loggerが使われている箇所を教えて", "content_search", "GrepTool"),
        ("srcディレクトリの一覧を見せて", "directory_listing", "LSTool"),
        ("main.pyを開いて", "file_view", "ViewTool"),
        ("hello there", "default", AGENT_TOOL),
    ],
)
def test_rule_precedence(router: HeuristicIntentRouter, message: str, rule: str, tool: str) -> None:
    """Each message is claimed by the expected rule."""

    decision = router.decide(message)
    assert (decision.rule, decision.tool_name) == (rule, tool)


def test_rule_order_is_fixed() -> None:
    """The precedence list is part of the contract."""

    assert [rule.name for rule in DEFAULT_RULES] == [
        "memory_file",
        "readme_view",
        "markdown_view",
        "detailed_analysis",
        "markdown_files",
        "file_search",
        "content_search",
        "directory_listing",
        "file_view",
        "package_manifest",
    ]


def test_decide_is_deterministic(router: HeuristicIntentRouter) -> None:
    """The same inputs always give the same decision."""

    for message in ("READMEの内容を見せて", "hello there", "マークダウンファイルを詳しく調査して"):
        assert router.decide(message, "draft") == router.decide(message, "draft")


def test_memory_file_pattern(router: HeuristicIntentRouter) -> None:
    """The memory rule searches for the configured file name."""

    assert _params(router.decide("CLAUDE.md を更新して")) == {"pattern": "**/CLAUDE.md"}


def test_markdown_view_beats_detailed_analysis(router: HeuristicIntentRouter) -> None:
    """Asking to see markdown content locates the files even when detail is requested."""

    decision = router.decide("マークダウンの内容を詳しく見せて")
    assert decision.rule == "markdown_view"
    assert _params(decision) == {"pattern": "**/*.md", "path": "/proj"}


def test_file_search_pattern_from_type(router: HeuristicIntentRouter) -> None:
    """The glob pattern follows the file type in the message."""

    assert _params(router.decide("jsonファイルを検索して")) == {"pattern": "**/*.json"}


def test_content_search_uses_quoted_term(router: HeuristicIntentRouter) -> None:
    """Quoted terms win over keyword guesses."""

    decision = router.decide('Where is "parse_memory" used in the code?')
    assert decision.rule == "content_search"
    assert _params(decision)["pattern"] == "parse_memory"


def test_content_search_keyword_term(router: HeuristicIntentRouter) -> None:
    """Without quotes the keyword itself becomes the search term."""

    assert _params(router.decide("loggerが使われている箇所を教えて"))["pattern"] == "logger"


def test_directory_listing_path(router: HeuristicIntentRouter) -> None:
    """A well-known sub-directory is listed under the project root."""

    assert _params(router.decide("srcディレクトリの一覧を見せて")) == {"path": "/proj/src"}
    assert _params(router.decide("list the directory")) == {"path": "/proj"}


def test_file_view_path(router: HeuristicIntentRouter) -> None:
    """File names are resolved against the project root."""

    assert _params(router.decide("main.pyを開いて")) == {"file_path": "/proj/main.py"}


def test_package_manifest_from_draft(router: HeuristicIntentRouter) -> None:
    """A manifest mentioned only in the draft reply is still found."""

    decision = router.decide("which dependencies does this project need?", "I will check package.json")
    assert decision.rule == "package_manifest"
    assert _params(decision) == {"pattern": "**/package.json"}


def test_detailed_analysis_prompt_mentions_pattern(router: HeuristicIntentRouter) -> None:
    """The delegated prompt names the files to analyse."""

    prompt = _params(router.decide("マークダウンファイルを詳しく調査して"))["prompt"]
    assert "**/*.md" in prompt
    assert "GlobTool" in prompt


def test_empty_rule_list_falls_back_to_default() -> None:
    """With no rules every message gets the broad investigation."""

    decision = HeuristicIntentRouter(rules=[], project_root="/proj").decide("READMEの内容を見せて")
    assert decision.rule == "default"
    assert decision.tool_name == AGENT_TOOL


def test_short_keywords_need_word_boundaries() -> None:
    """Short ASCII keywords do not match inside longer words."""

    assert not mentions("profile", "file")
    assert mentions("list files", "file")
    assert not has_token("list the tools", "ls")
    assert has_token("run ls please", "ls")
    assert file_pattern("find json files") == ("JSON", "**/*.json")
    assert file_pattern("find js files") == ("JavaScript", "**/*.js")


def test_dummy_response_is_separate_from_routing(router: HeuristicIntentRouter) -> None:
    """Random acknowledgements never change the routing decision."""

    first = dummy_response(random.Random(1))
    second = dummy_response(random.Random(2))
    assert isinstance(first, str) and first
    assert router.decide("hello there", first) == router.decide("hello there", second)
