"""
Categorized memory document.

A memory document is plain markdown text.  Everything before the first ``## `` heading is the
*uncategorized* region; each ``## Name`` heading starts a category whose body runs until the next
heading or the end of the text:

    Project uses Python 3.11.

    ## Build
    pip install -e .[test]

    ## Conventions
    Four-space indentation.

Documents are immutable values: every operation below returns a new :class:`MemoryDocument`, so a
document can be shared between sessions without copying.
"""

import logging
from typing import (
    Literal,
    Optional,
    Tuple,
)

from pydantic import (
    BaseModel,
    ConfigDict,
)

logger = logging.getLogger(__name__)

CATEGORY_MARKER = "## "
ENV_HEADER = "Here is useful information about the environment you are running in:"

UpsertMode = Literal["append", "replace"]


class MemoryCategory(BaseModel):
    """A named section of the memory document."""

    model_config = ConfigDict(frozen=True)

    name: str
    body: str = ""


class MemoryDocument(BaseModel):
    """Uncategorized prefix plus ordered, uniquely named categories."""

    model_config = ConfigDict(frozen=True)

    uncategorized: str = ""
    categories: Tuple[MemoryCategory, ...] = ()

    @property
    def is_empty(self) -> bool:
        """True when the document holds neither free text nor categories."""
        return not self.uncategorized.strip() and not self.categories

    def category_names(self) -> list[str]:
        """Category names in stored order."""
        return [category.name for category in self.categories]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _clean_name(name: str) -> str:
    # Headings are single lines; collapse any embedded whitespace runs
    return " ".join(str(name).split())


def _index_of(doc: MemoryDocument, name: str) -> int:
    wanted = _clean_name(name).casefold()
    for idx, category in enumerate(doc.categories):
        if category.name.casefold() == wanted:
            return idx
    return -1


def _join_blocks(first: str, second: str) -> str:
    first, second = first.strip(), second.strip()
    if first and second:
        return f"{first}\n\n{second}"
    return first or second


def _split(text: str) -> MemoryDocument:
    lines = text.replace("\r\n", "\n").split("\n")
    prefix: list[str] = []
    sections: list[Tuple[str, list[str]]] = []

    for line in lines:
        heading = line[len(CATEGORY_MARKER) :].strip() if line.startswith(CATEGORY_MARKER) else ""
        if heading:
            sections.append((heading, []))
        elif sections:
            sections[-1][1].append(line)
        else:
            prefix.append(line)

    doc = MemoryDocument(uncategorized="\n".join(prefix).strip())
    for name, body_lines in sections:
        # Repeated headings fold into the first occurrence
        doc = upsert_category(doc, name, "\n".join(body_lines), mode="append")
    return doc


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def parse_memory(text: Optional[str]) -> MemoryDocument:
    """
    Split *text* into its uncategorized region and categories.

    Never raises: input that cannot be split is kept whole as the uncategorized region.
    """
    if not text:
        return MemoryDocument()
    try:
        return _split(str(text))
    except Exception:  # pylint: disable=broad-except
        logger.warning("Could not split memory document into categories; keeping it as free text")
        return MemoryDocument(uncategorized=str(text).strip())


def serialize_memory(doc: MemoryDocument) -> str:
    """Render *doc* back into markdown suitable for the memory file."""
    blocks: list[str] = []
    if doc.uncategorized.strip():
        blocks.append(doc.uncategorized.strip())
    for category in doc.categories:
        blocks.append(f"{CATEGORY_MARKER}{category.name}\n{category.body.strip()}".rstrip())
    return "\n\n".join(blocks) + "\n" if blocks else ""


def render_memory(doc: MemoryDocument) -> str:
    """
    Render *doc* as a system-prompt fragment.

    The fragment starts with two newlines so it can be appended directly to a base prompt.  Empty
    categories are skipped; an empty document renders as ``""``.
    """
    if doc.is_empty:
        return ""

    fragment = f"\n\n{ENV_HEADER}\n<env>\n{doc.uncategorized.strip()}\n</env>"
    for category in doc.categories:
        body = category.body.strip()
        if body:
            fragment += f'\n<context name="{category.name}">\n{body}\n</context>'
    return fragment


def build_system_prompt(base_prompt: str, doc: MemoryDocument) -> str:
    """Append the rendered memory to *base_prompt*."""
    return base_prompt + render_memory(doc)


def get_category(doc: MemoryDocument, name: str) -> Optional[str]:
    """Return the body of category *name* (case-insensitive), or None."""
    idx = _index_of(doc, name)
    return doc.categories[idx].body if idx >= 0 else None


def upsert_category(
    doc: MemoryDocument, name: str, body: str, mode: UpsertMode = "append"
) -> MemoryDocument:
    """
    Add *body* to category *name*.

    Parameters
    ----------
    doc:
        The source document (left untouched).
    name:
        Category name, matched case-insensitively against existing categories.
    body:
        Text to store.
    mode:
        ``"append"`` adds *body* after a blank line (appending blank text is a no-op);
        ``"replace"`` swaps the existing body.  A missing category is always added at the end.

    Raises
    ------
    ValueError
        If *name* is blank or *mode* is unknown.
    """
    if mode not in ("append", "replace"):
        raise ValueError(f"Unknown upsert mode '{mode}'")
    clean = _clean_name(name)
    if not clean:
        raise ValueError("Category name must not be empty")

    categories = list(doc.categories)
    idx = _index_of(doc, clean)
    if idx < 0:
        categories.append(MemoryCategory(name=clean, body=body.strip()))
    elif mode == "replace":
        categories[idx] = MemoryCategory(name=categories[idx].name, body=body.strip())
    elif body.strip():
        current = categories[idx]
        categories[idx] = MemoryCategory(
            name=current.name, body=_join_blocks(current.body, body)
        )
    else:
        return doc
    return MemoryDocument(uncategorized=doc.uncategorized, categories=tuple(categories))


def clear_category(doc: MemoryDocument, name: str) -> MemoryDocument:
    """Empty the body of category *name*, keeping its heading."""
    return upsert_category(doc, name, "", mode="replace") if _index_of(doc, name) >= 0 else doc


def remove_category(doc: MemoryDocument, name: str) -> MemoryDocument:
    """Drop category *name* entirely."""
    idx = _index_of(doc, name)
    if idx < 0:
        return doc
    categories = doc.categories[:idx] + doc.categories[idx + 1 :]
    return MemoryDocument(uncategorized=doc.uncategorized, categories=categories)


def merge_documents(first: MemoryDocument, second: MemoryDocument) -> MemoryDocument:
    """
    Union two documents.

    Categories present in both keep *first*'s position and casing, with *second*'s body appended
    after a blank line.  Uncategorized regions are joined the same way.
    """
    merged = MemoryDocument(
        uncategorized=_join_blocks(first.uncategorized, second.uncategorized),
        categories=first.categories,
    )
    for category in second.categories:
        merged = upsert_category(merged, category.name, category.body, mode="append")
    return merged
