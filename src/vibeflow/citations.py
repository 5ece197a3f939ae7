"""Source citations attached to grounded or research output."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

# [title](https://...); titles containing "]" are not matched
_MARKDOWN_LINK = re.compile(r"\[([^\]]+)\]\((https?://[^)]+)\)")


@dataclass(frozen=True)
class SourceCitation:
    """A web source that backs part of a generated artifact."""

    uri: str
    title: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"uri": self.uri, "title": self.title}


def extract_markdown_citations(text: str) -> list[SourceCitation]:
    """Pull ``[title](url)`` links out of *text*, first occurrence wins."""
    return dedupe_citations(
        SourceCitation(uri=m.group(2), title=m.group(1))
        for m in _MARKDOWN_LINK.finditer(text)
    )


def dedupe_citations(
    citations: Iterable[SourceCitation],
) -> list[SourceCitation]:
    """Drop repeated URIs, keeping the first citation for each."""
    seen: set[str] = set()
    unique: list[SourceCitation] = []
    for citation in citations:
        if not citation.uri or citation.uri in seen:
            continue
        seen.add(citation.uri)
        unique.append(citation)
    return unique


def format_citations_block(citations: Iterable[SourceCitation]) -> str:
    """Format citations as a markdown list.

    Returns empty string if no citations.
    """
    lines = [
        f"{i}. [{c.title or c.uri}]({c.uri})"
        for i, c in enumerate(citations, 1)
    ]
    if not lines:
        return ""
    return "\n".join(["**Sources:**", *lines])
