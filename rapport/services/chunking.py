"""Split oversized transcripts into overlapping windows and stitch the summaries."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

DEFAULT_MAX_CHARS = 150_000
DEFAULT_OVERLAP = 10_000
DEFAULT_DELAY_SECONDS = 0.5
MAX_REDUCTION_DEPTH = 3

_logger = logging.getLogger("rapport.chunking")


@dataclass(frozen=True)
class TextWindow:
    index: int
    start: int
    end: int
    text: str


def split_into_windows(
    text: str, max_chars: int = DEFAULT_MAX_CHARS, overlap: int = DEFAULT_OVERLAP
) -> list[TextWindow]:
    """Cut ``text`` into sequential windows of at most ``max_chars``.

    Each window after the first starts ``overlap`` characters before the end
    of the previous one, so dropping that prefix from every later window and
    concatenating gives back ``text``.
    """
    if max_chars <= 0:
        raise ValueError("max_chars must be positive")
    if overlap < 0 or overlap >= max_chars:
        raise ValueError("overlap must be in [0, max_chars)")

    windows: list[TextWindow] = []
    start = 0
    length = len(text)
    while True:
        end = min(start + max_chars, length)
        windows.append(TextWindow(index=len(windows), start=start, end=end, text=text[start:end]))
        if end >= length:
            break
        start = end - overlap
    return windows


def _fill(template: str, **values: str) -> str:
    for key, value in values.items():
        template = template.replace("{{" + key + "}}", value)
    return template


def label_sections(summaries: list[str]) -> str:
    total = len(summaries)
    return "\n\n".join(
        f"=== Section {index} of {total} ===\n{summary}"
        for index, summary in enumerate(summaries, start=1)
    )


class ChunkedSummarizer:
    """Summarize each window in order, then combine the partial summaries once."""

    def __init__(
        self,
        max_chars: int = DEFAULT_MAX_CHARS,
        overlap: int = DEFAULT_OVERLAP,
        delay_seconds: float = DEFAULT_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        max_depth: int = MAX_REDUCTION_DEPTH,
    ) -> None:
        self._max_chars = max_chars
        self._overlap = overlap
        self._delay_seconds = delay_seconds
        self._sleep = sleep
        self._max_depth = max_depth

    @property
    def max_chars(self) -> int:
        return self._max_chars

    def needs_chunking(self, text: str) -> bool:
        return len(text) > self._max_chars

    async def _summarize_windows(
        self,
        text: str,
        complete: Callable[[str], Awaitable[str]],
        instructions: str,
        chunk_template: str,
    ) -> list[str]:
        windows = split_into_windows(text, self._max_chars, self._overlap)
        total = len(windows)
        _logger.info("Split %d chars into %d windows", len(text), total)

        summaries: list[str] = []
        for window in windows:
            if window.index > 0 and self._delay_seconds > 0:
                await self._sleep(self._delay_seconds)
            _logger.info("Summarizing window %d of %d", window.index + 1, total)
            prompt = _fill(
                chunk_template,
                instructions=instructions,
                index=str(window.index + 1),
                total=str(total),
                section=window.text,
            )
            summaries.append((await complete(prompt)).strip())
        return summaries

    async def summarize(
        self,
        text: str,
        complete: Callable[[str], Awaitable[str]],
        instructions: str,
        chunk_template: str,
        combine_template: str,
        notes_section: str = "",
    ) -> str:
        """Summarize ``text`` window by window through ``complete``.

        ``complete`` sends one prompt to the AI and returns its reply. The
        labelled partial summaries go through one final combination call;
        when they are themselves too long they are reduced again first.
        """
        summaries = await self._summarize_windows(text, complete, instructions, chunk_template)
        combined = label_sections(summaries)

        depth = 1
        while len(combined) > self._max_chars and depth < self._max_depth:
            _logger.warning(
                "Combined section summaries still %d chars; reducing again (depth=%d)",
                len(combined),
                depth,
            )
            summaries = await self._summarize_windows(
                combined, complete, instructions, chunk_template
            )
            combined = label_sections(summaries)
            depth += 1

        _logger.info("Combining %d section summaries", len(summaries))
        notes_block = f"\n{notes_section.strip()}\n" if notes_section.strip() else ""
        prompt = _fill(
            combine_template,
            instructions=instructions,
            sections=combined,
            user_notes=notes_block,
        )
        return (await complete(prompt)).strip()
