"""Tests for semantic chunking."""

from codeindex.indexing.chunker import Chunk, ChunkType, CodeChunker

FUNCTION_AND_INTERFACE = (
    "export function greet(name: string): string {\n"
    "  return `Hello, ${name}`;\n"
    "}\n"
    "\n"
    "export interface User {\n"
    "  id: number;\n"
    "  name: string;\n"
    "}\n"
)


def test_function_and_interface_yield_two_tagged_chunks() -> None:
    chunks = CodeChunker().chunk_file("src/greet.ts", FUNCTION_AND_INTERFACE)

    assert [c.chunk_type for c in chunks] == [ChunkType.FUNCTION, ChunkType.INTERFACE]
    assert [c.name for c in chunks] == ["greet", "User"]
    assert (chunks[0].start_line, chunks[0].end_line) == (1, 3)
    assert (chunks[1].start_line, chunks[1].end_line) == (5, 8)
    assert chunks[1].content.startswith("export interface User {")


def test_fallback_windows_split_on_line_count() -> None:
    content = "".join(f"value number {i}\n" for i in range(1, 121))

    chunks = CodeChunker().chunk_file("script.py", content)

    assert [c.line_count for c in chunks] == [50, 50, 20]
    assert [(c.start_line, c.end_line) for c in chunks] == [(1, 50), (51, 100), (101, 120)]
    assert all(c.chunk_type is ChunkType.TEXT for c in chunks)
    assert chunks[2].content.splitlines()[-1] == "value number 120"


def test_fallback_drops_whitespace_only_windows() -> None:
    content = "first line of text\n" + "\n" * 60 + "last line of text\n"

    chunks = CodeChunker(fallback_window_lines=20).chunk_file("notes.cfg", content)

    assert [c.start_line for c in chunks] == [1, 61]


def test_imports_are_single_line_chunks() -> None:
    content = (
        "import React from 'react';\n"
        "import { useState } from 'react';\n"
    )

    chunks = CodeChunker().chunk_file("App.tsx", content)

    assert [c.chunk_type for c in chunks] == [ChunkType.IMPORT, ChunkType.IMPORT]
    assert [c.start_line for c in chunks] == [1, 2]


def test_multiline_import_stays_together() -> None:
    content = (
        "import {\n"
        "  alpha,\n"
        "  beta,\n"
        "} from './letters';\n"
    )

    [chunk] = CodeChunker().chunk_file("letters.ts", content)

    assert chunk.chunk_type is ChunkType.IMPORT
    assert (chunk.start_line, chunk.end_line) == (1, 4)


def test_consecutive_comments_form_one_chunk() -> None:
    content = (
        "// Adds two numbers together\n"
        "// and returns the sum\n"
        "function add(a, b) {\n"
        "  return a + b;\n"
        "}\n"
    )

    chunks = CodeChunker().chunk_file("math.js", content)

    assert [c.chunk_type for c in chunks] == [ChunkType.COMMENT, ChunkType.FUNCTION]
    assert (chunks[0].start_line, chunks[0].end_line) == (1, 2)
    assert chunks[1].name == "add"


def test_arrow_function_component() -> None:
    content = (
        "export const Button = (props: ButtonProps) => {\n"
        "  if (props.disabled) {\n"
        "    return null;\n"
        "  }\n"
        "  return <button>{props.label}</button>;\n"
        "};\n"
        "\n"
        "export const double = (n: number) => n * 2;\n"
    )

    chunks = CodeChunker().chunk_file("Button.tsx", content)

    assert [(c.chunk_type, c.name) for c in chunks] == [
        (ChunkType.FUNCTION, "Button"),
        (ChunkType.FUNCTION, "double"),
    ]
    assert (chunks[0].start_line, chunks[0].end_line) == (1, 6)


def test_nested_braces_do_not_end_block_early() -> None:
    content = (
        "export class Store {\n"
        "  load() {\n"
        "    return {};\n"
        "  }\n"
        "\n"
        "  save() {\n"
        "    const label = '}';\n"
        "  }\n"
        "}\n"
    )

    [chunk] = CodeChunker().chunk_file("store.ts", content)

    assert chunk.chunk_type is ChunkType.CLASS
    assert chunk.name == "Store"
    assert (chunk.start_line, chunk.end_line) == (1, 9)


def test_default_export_function_and_type_alias() -> None:
    content = (
        "type Status =\n"
        "  | 'idle'\n"
        "  | 'loading';\n"
        "\n"
        "export default function Page() {\n"
        "  return null;\n"
        "}\n"
    )

    chunks = CodeChunker().chunk_file("page.tsx", content)

    assert [(c.chunk_type, c.name) for c in chunks] == [
        (ChunkType.TYPE, "Status"),
        (ChunkType.FUNCTION, "Page"),
    ]
    assert chunks[0].end_line == 3


def test_unmatched_code_becomes_text() -> None:
    content = "console.log('starting the application');\nrun();\n"

    [chunk] = CodeChunker().chunk_file("boot.js", content)

    assert chunk.chunk_type is ChunkType.TEXT


def test_short_chunks_are_dropped() -> None:
    assert CodeChunker().chunk_file("tiny.ts", "x();\n") == []


def test_chunks_must_be_longer_than_minimum() -> None:
    chunker = CodeChunker()

    assert chunker.chunk_file("short.md", "  0123456789  \n") == []

    [chunk] = chunker.chunk_file("short.md", "0123456789a\n")
    assert chunk.content == "0123456789a"


def test_prose_splits_on_headings() -> None:
    content = (
        "# Title\n"
        "Intro paragraph text here.\n"
        "\n"
        "## Section\n"
        "More text in section two.\n"
    )

    chunks = CodeChunker().chunk_file("README.md", content)

    assert [(c.start_line, c.end_line) for c in chunks] == [(1, 2), (4, 5)]
    assert all(c.chunk_type is ChunkType.TEXT for c in chunks)


def test_prose_ignores_headings_inside_fences() -> None:
    content = (
        "# Setup\n"
        "```bash\n"
        "# install dependencies\n"
        "npm install\n"
        "```\n"
        "Done with setup.\n"
    )

    [chunk] = CodeChunker().chunk_file("docs/setup.md", content)

    assert (chunk.start_line, chunk.end_line) == (1, 6)


def test_prose_splits_long_sections_at_paragraphs() -> None:
    paragraph = "word " * 40
    content = "# Long\n" + "".join(f"{paragraph}\n\n" for _ in range(6))

    chunks = CodeChunker().chunk_file("long.txt", content)

    assert len(chunks) > 1
    assert all(len(c.content) <= 2000 for c in chunks)
    assert chunks[0].start_line == 1


def test_oversized_chunks_are_split_by_size() -> None:
    content = "".join("x" * 30 + "\n" for _ in range(50))

    chunks = CodeChunker(max_chunk_chars=100).chunk_file("data.csv", content)

    assert len(chunks) > 1
    assert all(len(c.content) <= 100 for c in chunks)
    assert chunks[0].start_line == 1
    assert chunks[-1].end_line == 50
    for previous, current in zip(chunks, chunks[1:]):
        assert current.start_line == previous.end_line + 1


def test_chunk_with_size_limit_splits_long_lines() -> None:
    chunks = CodeChunker().chunk_with_size_limit("a" * 25, max_chunk_size=10)

    assert [len(c.content) for c in chunks] == [10, 10, 5]
    assert all(c.start_line == 1 and c.end_line == 1 for c in chunks)


def test_chunk_with_size_limit_line_ranges_around_split_line() -> None:
    content = "ab\n" + "c" * 25 + "\nde"

    chunks = CodeChunker().chunk_with_size_limit(content, max_chunk_size=10, first_line=5)

    assert [c.content for c in chunks] == ["ab", "c" * 10, "c" * 10, "ccccc\nde"]
    assert [(c.start_line, c.end_line) for c in chunks] == [(5, 5), (6, 6), (6, 6), (6, 7)]


def test_crlf_and_empty_input() -> None:
    chunker = CodeChunker()

    assert chunker.chunk_file("a.ts", "") == []
    assert chunker.chunk_file("a.ts", "   \n\t\n") == []

    chunks = chunker.chunk_file("greet.ts", FUNCTION_AND_INTERFACE.replace("\n", "\r\n"))
    assert [c.chunk_type for c in chunks] == [ChunkType.FUNCTION, ChunkType.INTERFACE]
    assert "\r" not in chunks[0].content


def test_chunk_line_count() -> None:
    assert Chunk(content="abc", start_line=3, end_line=7).line_count == 5
