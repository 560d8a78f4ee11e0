"""
Semantic Chunking for Project Files

This module splits file content into semantically bounded chunks for vector
indexing. Script sources are split on declarations (functions, classes,
interfaces, types, imports, exports, comment blocks), prose is split on
headings and paragraphs, and everything else falls back to fixed line windows.

Construct detection is a line-level regex heuristic, not a parser. It is
allowed to misclassify; input that matches nothing ends up as plain text.
"""

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Pattern, Tuple


class ChunkType(Enum):
    """Coarse classification of a chunk."""
    FUNCTION = "function"
    CLASS = "class"
    INTERFACE = "interface"
    TYPE = "type"
    IMPORT = "import"
    EXPORT = "export"
    COMMENT = "comment"
    TEXT = "text"


@dataclass
class Chunk:
    """A contiguous slice of a file with positional metadata."""
    content: str
    start_line: int
    end_line: int
    chunk_type: ChunkType = ChunkType.TEXT
    name: Optional[str] = None

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1


CODE_EXTENSIONS = {'.ts', '.tsx', '.js', '.jsx', '.mjs', '.cjs'}
PROSE_EXTENSIONS = {'.md', '.markdown', '.txt'}

# Checked in order; the first match wins
CONSTRUCT_PATTERNS: List[Tuple[ChunkType, Pattern]] = [
    (ChunkType.FUNCTION, re.compile(
        r'^\s*(?:export\s+)?(?:default\s+)?(?:async\s+)?function\b'
        r'|^\s*(?:export\s+)?const\s+\w+\s*=\s*(?:async\s+)?\([^)]*\)\s*(?::[^=]*)?=>'
    )),
    (ChunkType.CLASS, re.compile(r'^\s*(?:export\s+)?(?:default\s+)?(?:abstract\s+)?class\s+\w+')),
    (ChunkType.INTERFACE, re.compile(r'^\s*(?:export\s+)?interface\s+\w+')),
    (ChunkType.TYPE, re.compile(r'^\s*(?:export\s+)?type\s+\w+')),
    (ChunkType.IMPORT, re.compile(r'^\s*import[\s{"\'*]|^\s*export\s.*\bfrom\s+[\'"]')),
    (ChunkType.EXPORT, re.compile(r'^\s*export\s+')),
    (ChunkType.COMMENT, re.compile(r'^\s*(?://|/\*|\*)')),
]

NAME_PATTERNS = {
    ChunkType.FUNCTION: re.compile(r'function\s*\*?\s*(\w+)|const\s+(\w+)\s*='),
    ChunkType.CLASS: re.compile(r'class\s+(\w+)'),
    ChunkType.INTERFACE: re.compile(r'interface\s+(\w+)'),
    ChunkType.TYPE: re.compile(r'type\s+(\w+)'),
    ChunkType.EXPORT: re.compile(r'export\s+(?:default\s+)?(?:const|let|var|enum)\s+(\w+)'),
}

BLOCK_END = re.compile(r'^\}(?:\s*\))*\s*;?$')
FENCE = re.compile(r'^(```|~~~)')


class CodeChunker:
    """Routes files to a chunking strategy by extension."""

    def __init__(self,
                 min_chunk_chars: int = 10,
                 max_chunk_chars: int = 6000,
                 prose_split_chars: int = 500,
                 prose_max_chars: int = 2000,
                 fallback_window_lines: int = 50):
        self.min_chunk_chars = min_chunk_chars
        self.max_chunk_chars = max_chunk_chars
        self.prose_split_chars = prose_split_chars
        self.prose_max_chars = prose_max_chars
        self.fallback_window_lines = fallback_window_lines

    def chunk_file(self, file_path: str, content: str) -> List[Chunk]:
        """Chunk a file based on its extension."""
        if not content or not content.strip():
            return []

        file_ext = Path(file_path).suffix.lower()
        lines = self._split_lines(content)

        if file_ext in CODE_EXTENSIONS:
            chunks = self._chunk_code(lines)
        elif file_ext in PROSE_EXTENSIONS:
            chunks = self._chunk_prose(lines)
        else:
            chunks = self._chunk_fixed_windows(lines)

        return self._enforce_size_limit(chunks)

    def _split_lines(self, content: str) -> List[str]:
        lines = content.replace('\r\n', '\n').split('\n')
        # A trailing newline does not start another line
        if lines and lines[-1] == '':
            lines.pop()
        return lines

    # Code strategy

    def _chunk_code(self, lines: List[str]) -> List[Chunk]:
        chunks: List[Chunk] = []
        buffer: List[str] = []
        buffer_start = 1
        kind: Optional[ChunkType] = None
        name: Optional[str] = None
        depth = 0

        def flush() -> None:
            nonlocal buffer, kind, name, depth
            if buffer:
                chunk_kind, chunk_name = kind, name
                if chunk_kind is None:
                    chunk_kind, chunk_name = self._infer_chunk_type(buffer)
                self._add_chunk(chunks, buffer, buffer_start, chunk_kind, chunk_name)
            buffer = []
            kind = None
            name = None
            depth = 0

        for line_number, line in enumerate(lines, 1):
            construct = self._match_construct(line) if depth <= 0 else None

            if construct is not None:
                matched_kind, matched_name = construct

                # Consecutive comment lines form one comment block
                if matched_kind is ChunkType.COMMENT and kind is ChunkType.COMMENT:
                    buffer.append(line)
                    continue

                flush()
                buffer = [line]
                buffer_start = line_number
                kind, name = matched_kind, matched_name

                if matched_kind is ChunkType.COMMENT:
                    continue

                depth = self._brace_delta(line)
                if depth <= 0 and (matched_kind is ChunkType.IMPORT or self._is_single_line_construct(line)):
                    flush()
                continue

            if kind is ChunkType.COMMENT and line.strip():
                flush()

            if not buffer:
                buffer_start = line_number
            buffer.append(line)
            depth += self._brace_delta(line)

            if depth <= 0:
                if self._is_block_end(line):
                    flush()
                elif kind is not None and line.rstrip().endswith(';'):
                    # Multi-line declaration finished by a statement terminator
                    flush()

        flush()
        return chunks

    def _match_construct(self, line: str) -> Optional[Tuple[ChunkType, Optional[str]]]:
        for chunk_type, pattern in CONSTRUCT_PATTERNS:
            if pattern.search(line):
                return chunk_type, self._extract_name(line, chunk_type)
        return None

    def _infer_chunk_type(self, buffer: List[str]) -> Tuple[ChunkType, Optional[str]]:
        """Re-scan a buffer and classify it by its first matching line."""
        for line in buffer:
            construct = self._match_construct(line)
            if construct is not None:
                return construct
        return ChunkType.TEXT, None

    def _extract_name(self, line: str, chunk_type: ChunkType) -> Optional[str]:
        pattern = NAME_PATTERNS.get(chunk_type)
        if pattern is None:
            return None
        match = pattern.search(line)
        if not match:
            return None
        return next((group for group in match.groups() if group), None)

    def _is_single_line_construct(self, line: str) -> bool:
        stripped = line.rstrip()
        return stripped.endswith(';') or ('=>' in stripped and ';' in stripped)

    def _is_block_end(self, line: str) -> bool:
        trimmed = line.strip()
        return bool(BLOCK_END.match(trimmed)) or trimmed.endswith('});')

    def _brace_delta(self, line: str) -> int:
        """Net braces opened on a line, ignoring string literals and line comments."""
        delta = 0
        quote = None
        i = 0
        while i < len(line):
            char = line[i]
            if quote:
                if char == '\\':
                    i += 2
                    continue
                if char == quote:
                    quote = None
            elif char in ('"', "'", '`'):
                quote = char
            elif line.startswith('//', i):
                break
            elif char == '{':
                delta += 1
            elif char == '}':
                delta -= 1
            i += 1
        return delta

    # Prose strategy

    def _chunk_prose(self, lines: List[str]) -> List[Chunk]:
        chunks: List[Chunk] = []
        buffer: List[str] = []
        buffer_start = 1
        size = 0
        in_fence = False

        for line_number, line in enumerate(lines, 1):
            stripped = line.strip()
            is_fence = bool(FENCE.match(stripped))

            if not in_fence and not is_fence and stripped.startswith('#'):
                self._add_chunk(chunks, buffer, buffer_start, ChunkType.TEXT)
                buffer = [line]
                buffer_start = line_number
                size = len(line) + 1
                continue

            if is_fence:
                in_fence = not in_fence

            if not buffer:
                buffer_start = line_number
            buffer.append(line)
            size += len(line) + 1

            if (stripped == '' and size > self.prose_split_chars) or size > self.prose_max_chars:
                self._add_chunk(chunks, buffer, buffer_start, ChunkType.TEXT)
                buffer = []
                size = 0

        self._add_chunk(chunks, buffer, buffer_start, ChunkType.TEXT)
        return chunks

    # Fallback strategy

    def _chunk_fixed_windows(self, lines: List[str]) -> List[Chunk]:
        chunks = []
        window = self.fallback_window_lines

        for i in range(0, len(lines), window):
            window_lines = lines[i:i + window]
            content = '\n'.join(window_lines)
            if not content.strip():
                continue
            chunks.append(Chunk(
                content=content,
                start_line=i + 1,
                end_line=i + len(window_lines),
                chunk_type=ChunkType.TEXT,
            ))

        return chunks

    def chunk_with_size_limit(self, content: str, max_chunk_size: int = 1000,
                              first_line: int = 1) -> List[Chunk]:
        """Split text along line boundaries into pieces of at most max_chunk_size characters."""
        chunks: List[Chunk] = []
        current: List[str] = []
        current_size = 0
        current_start = current_end = first_line

        def emit() -> None:
            text = '\n'.join(current)
            if text.strip():
                chunks.append(Chunk(content=text, start_line=current_start, end_line=current_end))

        for line_number, line in enumerate(self._split_lines(content), first_line):
            # Lines longer than the limit are cut into pieces on their own
            pieces = [line[i:i + max_chunk_size] for i in range(0, len(line), max_chunk_size)] or ['']
            for piece in pieces:
                if current and current_size + len(piece) + 1 > max_chunk_size:
                    emit()
                    current = []
                    current_size = 0
                if not current:
                    current_start = line_number
                current.append(piece)
                current_size += len(piece) + 1
                current_end = line_number

        if current:
            emit()

        return chunks

    def _enforce_size_limit(self, chunks: List[Chunk]) -> List[Chunk]:
        result = []
        for chunk in chunks:
            if len(chunk.content) <= self.max_chunk_chars:
                result.append(chunk)
                continue
            for piece in self.chunk_with_size_limit(chunk.content, self.max_chunk_chars, chunk.start_line):
                piece.chunk_type = chunk.chunk_type
                piece.name = chunk.name
                result.append(piece)
        return result

    def _add_chunk(self, chunks: List[Chunk], buffer: List[str], buffer_start: int,
                   chunk_type: ChunkType, name: Optional[str] = None) -> None:
        """Append a chunk for the buffer, trimming blank edge lines and dropping trivial text."""
        first = 0
        last = len(buffer) - 1
        while first <= last and not buffer[first].strip():
            first += 1
        while last >= first and not buffer[last].strip():
            last -= 1
        if first > last:
            return

        content = '\n'.join(buffer[first:last + 1])
        if len(content.strip()) <= self.min_chunk_chars:
            return

        chunks.append(Chunk(
            content=content,
            start_line=buffer_start + first,
            end_line=buffer_start + last,
            chunk_type=chunk_type,
            name=name,
        ))
