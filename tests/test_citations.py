"""Tests for source citations."""

from vibeflow.citations import (
    SourceCitation,
    dedupe_citations,
    extract_markdown_citations,
    format_citations_block,
)


def test_extract_markdown_citations() -> None:
    text = (
        "See [Docs](https://docs.example/a) and "
        "[Blog](http://blog.example/b), again [Docs](https://docs.example/a)."
    )
    assert extract_markdown_citations(text) == [
        SourceCitation("https://docs.example/a", "Docs"),
        SourceCitation("http://blog.example/b", "Blog"),
    ]


def test_extract_ignores_non_http_links() -> None:
    assert extract_markdown_citations("[x](ftp://host/file)") == []


def test_dedupe_keeps_first_and_drops_empty() -> None:
    citations = [
        SourceCitation("https://a.example", "First"),
        SourceCitation("", "No uri"),
        SourceCitation("https://a.example", "Second"),
    ]
    assert dedupe_citations(citations) == [
        SourceCitation("https://a.example", "First")
    ]


def test_format_citations_block() -> None:
    block = format_citations_block([
        SourceCitation("https://a.example", "A"),
        SourceCitation("https://b.example"),
    ])
    assert block == (
        "**Sources:**\n"
        "1. [A](https://a.example)\n"
        "2. [https://b.example](https://b.example)"
    )


def test_format_citations_block_empty() -> None:
    assert format_citations_block([]) == ""
