"""Tests for the categorized memory document."""

import pytest

from toolchat.memory.memory_document import (
    MemoryDocument,
    build_system_prompt,
    clear_category,
    get_category,
    merge_documents,
    parse_memory,
    remove_category,
    render_memory,
    serialize_memory,
    upsert_category,
)

SAMPLE = """\
Project uses Python 3.11.

## Build
pip install -e .

### Details
Use a virtualenv.

## Conventions
Four-space indentation.
"""


def test_parse_splits_regions() -> None:
    """Text before the first heading is uncategorized; deeper headings stay in bodies."""

    doc = parse_memory(SAMPLE)

    assert doc.uncategorized == "Project uses Python 3.11."
    assert doc.category_names() == ["Build", "Conventions"]
    assert get_category(doc, "build") == "pip install -e .\n\n### Details\nUse a virtualenv."


def test_parse_without_headings() -> None:
    """A document with no categories is all uncategorized."""

    doc = parse_memory("just some notes\n")
    assert doc.uncategorized == "just some notes"
    assert doc.categories == ()


def test_parse_empty_text() -> None:
    """Empty or missing text gives an empty document."""

    assert parse_memory("").is_empty
    assert parse_memory(None).is_empty


def test_duplicate_headings_are_merged() -> None:
    """A repeated category (any casing) folds into the first occurrence."""

    doc = parse_memory("## Notes\nfirst\n## notes\nsecond\n")
    assert doc.category_names() == ["Notes"]
    assert get_category(doc, "NOTES") == "first\n\nsecond"


def test_serialize_round_trip() -> None:
    """Serializing and parsing again gives an equal document."""

    doc = parse_memory(SAMPLE)
    assert parse_memory(serialize_memory(doc)) == doc


def test_render_format() -> None:
    """The system-prompt fragment wraps free text in <env> and categories in <context>."""

    doc = parse_memory("Project uses uv.\n\n## Build\nmake all\n\n## Empty\n")
    assert render_memory(doc) == (
        "\n\nHere is useful information about the environment you are running in:\n"
        "<env>\nProject uses uv.\n</env>"
        '\n<context name="Build">\nmake all\n</context>'
    )


def test_render_empty_document() -> None:
    """Nothing is appended for an empty document."""

    assert render_memory(MemoryDocument()) == ""
    assert build_system_prompt("base", MemoryDocument()) == "base"


def test_build_system_prompt_appends_fragment() -> None:
    """The fragment is appended to the base prompt."""

    doc = parse_memory("notes")
    assert build_system_prompt("base", doc) == "base" + render_memory(doc)


def test_upsert_appends_with_blank_line() -> None:
    """Append mode joins bodies with a blank line and matches names case-insensitively."""

    doc = upsert_category(parse_memory(SAMPLE), "CONVENTIONS", "Type hints everywhere.")
    assert get_category(doc, "Conventions") == "Four-space indentation.\n\nType hints everywhere."
    assert doc.category_names() == ["Build", "Conventions"]


def test_upsert_replace_is_idempotent() -> None:
    """Replacing twice with the same body equals replacing once."""

    doc = parse_memory(SAMPLE)
    once = upsert_category(doc, "Build", "make", mode="replace")
    twice = upsert_category(once, "Build", "make", mode="replace")
    assert once == twice
    assert get_category(once, "Build") == "make"


def test_upsert_missing_category_goes_last() -> None:
    """New categories are appended at the end."""

    doc = upsert_category(parse_memory(SAMPLE), "Deploy", "kubectl apply")
    assert doc.category_names() == ["Build", "Conventions", "Deploy"]


def test_upsert_blank_append_is_noop() -> None:
    """Appending blank text leaves the document unchanged."""

    doc = parse_memory(SAMPLE)
    assert upsert_category(doc, "Build", "   ") == doc


def test_upsert_leaves_source_untouched() -> None:
    """Documents are values; operations return new ones."""

    doc = parse_memory(SAMPLE)
    upsert_category(doc, "Build", "changed", mode="replace")
    assert get_category(doc, "Build").startswith("pip install")


def test_category_names_are_not_patterns() -> None:
    """Names with regex metacharacters are handled literally."""

    doc = upsert_category(MemoryDocument(), "C++ (notes) [wip]", "pointers")
    doc = upsert_category(doc, "c++ (NOTES) [wip]", "references")
    assert doc.category_names() == ["C++ (notes) [wip]"]
    assert get_category(doc, "C++ (notes) [wip]") == "pointers\n\nreferences"
    assert get_category(doc, "C") is None


def test_upsert_rejects_bad_input() -> None:
    """Blank names and unknown modes are errors."""

    with pytest.raises(ValueError):
        upsert_category(MemoryDocument(), "  ", "body")
    with pytest.raises(ValueError):
        upsert_category(MemoryDocument(), "x", "body", mode="prepend")  # type: ignore[arg-type]


def test_clear_and_remove_category() -> None:
    """Clearing keeps the heading; removing drops it."""

    doc = parse_memory(SAMPLE)
    cleared = clear_category(doc, "build")
    assert get_category(cleared, "Build") == ""
    assert cleared.category_names() == ["Build", "Conventions"]

    removed = remove_category(doc, "build")
    assert removed.category_names() == ["Conventions"]
    assert remove_category(doc, "missing") == doc


def test_merge_documents() -> None:
    """Shared categories concatenate first then second; others are unioned."""

    first = parse_memory("alpha\n## Build\nmake\n")
    second = parse_memory("beta\n## build\nmake test\n## Deploy\nship it\n")
    merged = merge_documents(first, second)

    assert merged.uncategorized == "alpha\n\nbeta"
    assert merged.category_names() == ["Build", "Deploy"]
    assert get_category(merged, "Build") == "make\n\nmake test"
