"""Generation statistics for one streamed reply."""

import time
from typing import Callable

from ai_coding_cli.streaming import Channel


class StreamStats:
    """Tracks timing and token counts of a streamed reply.

    Every streamed chunk counts as one token, attributed to the channel the
    chunk ended in, unless the provider reports ``completion_tokens`` in its
    final usage.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.started_at = clock()
        self.ended_at: float | None = None
        self.reasoning_tokens = 0
        self.visible_tokens = 0
        self.usage: dict[str, int] = {}

    def record(self, channel: Channel) -> None:
        if channel is Channel.REASONING:
            self.reasoning_tokens += 1
        else:
            self.visible_tokens += 1

    def finish(self, usage: dict[str, int] | None = None) -> None:
        if self.ended_at is None:
            self.ended_at = self._clock()
        if usage:
            self.usage = dict(usage)

    @property
    def elapsed(self) -> float:
        end = self.ended_at if self.ended_at is not None else self._clock()
        return max(0.0, end - self.started_at)

    @property
    def total_tokens(self) -> int:
        reported = self.usage.get("completion_tokens")
        if reported:
            return int(reported)
        return self.reasoning_tokens + self.visible_tokens

    @property
    def tokens_per_second(self) -> float:
        elapsed = self.elapsed
        if elapsed <= 0:
            return 0.0
        return self.total_tokens / elapsed

    def render(self) -> str:
        """Format as ``⏱ 3.2s | 142 tok | 44.4 tok/s``."""
        parts = [f"⏱ {self.elapsed:.1f}s"]
        if self.reasoning_tokens and self.visible_tokens and not self.usage.get("completion_tokens"):
            parts.append(
                f"thinking {self.reasoning_tokens} + response {self.visible_tokens} = "
                f"{self.total_tokens} tok"
            )
        else:
            parts.append(f"{self.total_tokens} tok")
        parts.append(f"{self.tokens_per_second:.1f} tok/s")
        return " | ".join(parts)
