"""
Paragraph Chunker
------------------
Splits a document's flattened text into overlapping, size-bounded chunks
aligned to paragraph boundaries.

Strategy:
  - SHORT docs (< min_size chars): one chunk spanning the whole text.

  - Everything else: paragraphs (blank-line separated) are packed greedily
    into a buffer up to target_size.  When the next paragraph would overflow
    a buffer that is already past min_size, the buffer becomes a chunk and
    the next buffer starts with the last `overlap` characters of it, so a
    sentence straddling the boundary is retrievable from either side.

  - A buffer past max_size is force-flushed in non-overlapping max_size
    slices; this is the only way a single giant paragraph gets split.

Markdown headings seen while scanning are attached to the chunks that
follow them (section + heading trail), and chunks starting with a code
fence or an indented block are flagged as code.

Chunking is a pure function of the text and the config: the same body
always yields the same boundaries.
"""
from __future__ import annotations

import re
from typing import Iterator

from loguru import logger

from docsearch.chunking.schemas import Chunk, ChunkMetadata
from docsearch.config import ChunkingConfig
from docsearch.schemas import Document

_PARAGRAPH_SPLIT = re.compile(r"(\n\n+)")
_HEADING = re.compile(r"^(#{1,6})\s+(.+)$", re.MULTILINE)
_CODE_INDENT = re.compile(r"^(?: {4,}|\t)")
_JOINER = "\n\n"


def iter_paragraphs(text: str) -> Iterator[tuple[str, int, int]]:
    """Yield (paragraph, start_offset, separator_length) in text order."""
    parts = _PARAGRAPH_SPLIT.split(text)
    cursor = 0
    for i in range(0, len(parts), 2):
        para = parts[i]
        sep_len = len(parts[i + 1]) if i + 1 < len(parts) else 0
        yield para, cursor, sep_len
        cursor += len(para) + sep_len


def is_code_block(text: str) -> bool:
    head = text.lstrip("\n")
    return head.startswith("```") or bool(_CODE_INDENT.match(head))


class ParagraphChunker:
    """
    Paragraph-aligned chunker with character overlap.

    Usage:
        chunker = ParagraphChunker(ChunkingConfig())
        chunks = chunker.chunk(document)
    """

    def __init__(self, config: ChunkingConfig | None = None) -> None:
        self.config = config or ChunkingConfig()

    def needs_chunking(self, doc: Document) -> bool:
        """Only documents noticeably longer than one chunk get chunk vectors."""
        return len(doc.text) > self.config.target_size * self.config.chunking_factor

    def chunk(self, doc: Document) -> list[Chunk]:
        """Split `doc` into ordered chunks."""
        text = doc.text
        cfg = self.config

        if len(text) < cfg.min_size:
            return [self._make_chunk(doc, 0, text, 0, len(text), ChunkMetadata())]

        pieces: list[tuple[str, int, int, ChunkMetadata]] = []
        trail: list[tuple[int, str]] = []   # (heading level, heading text)

        def emit(raw: str, start: int, end: int) -> None:
            content = raw.strip()
            if not content:
                return
            meta = ChunkMetadata(
                section=trail[-1][1] if trail else None,
                headings=[heading for _, heading in trail],
                is_code_block=is_code_block(raw),
            )
            end = min(end, len(text))
            pieces.append((content, start, max(end, start), meta))

        buffer = ""
        buf_start = 0
        last_end = 0

        for para, start, sep_len in iter_paragraphs(text):
            para_end = start + len(para)
            cursor = para_end + sep_len
            if not para.strip():
                continue

            joined_len = len(buffer) + len(para) + (len(_JOINER) if buffer else 0)
            if joined_len > cfg.target_size and len(buffer) > cfg.min_size:
                emit(buffer, buf_start, start)
                if cfg.overlap > 0 and len(buffer) > cfg.overlap:
                    buffer = buffer[-cfg.overlap:] + _JOINER + para
                    buf_start = max(last_end - cfg.overlap, 0)
                else:
                    buffer = para
                    buf_start = start
            elif buffer:
                buffer += _JOINER + para
            else:
                buffer = para
                buf_start = start

            self._update_trail(trail, para)
            last_end = para_end

            if len(buffer) > cfg.max_size:
                for offset in range(0, len(buffer), cfg.max_size):
                    piece = buffer[offset: offset + cfg.max_size]
                    piece_start = buf_start + offset
                    if offset + cfg.max_size >= len(buffer):
                        piece_end = cursor
                    else:
                        piece_end = piece_start + len(piece)
                    emit(piece, piece_start, piece_end)
                buffer = ""
                buf_start = cursor

        if buffer.strip():
            emit(buffer, buf_start, len(text))

        chunks = [
            self._make_chunk(doc, index, content, start, end, meta)
            for index, (content, start, end, meta) in enumerate(pieces)
        ]
        logger.debug(
            f"[Chunker] {doc.id[:12]} | {len(text)} chars -> {len(chunks)} chunk(s)"
        )
        return chunks

    @staticmethod
    def _update_trail(trail: list[tuple[int, str]], para: str) -> None:
        for match in _HEADING.finditer(para):
            level = len(match.group(1))
            while trail and trail[-1][0] >= level:
                trail.pop()
            trail.append((level, match.group(2).strip()))

    @staticmethod
    def _make_chunk(
        doc: Document,
        index: int,
        content: str,
        start: int,
        end: int,
        meta: ChunkMetadata,
    ) -> Chunk:
        return Chunk(
            doc_id=doc.id,
            chunk_index=index,
            content=content,
            start_offset=start,
            end_offset=end,
            metadata=meta,
            doc_title=doc.title,
            scope_id=doc.scope_id,
        )
