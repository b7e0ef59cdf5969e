"""Streaming splitter for reasoning markers.

Models interleave internal deliberation with the actual answer, delimiting
the former with a marker pair (``<think>...</think>`` by default). The
splitter classifies every character of an incrementally delivered stream as
either reasoning or visible text, without ever emitting part of a marker and
without losing input that ends mid-marker.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Callable

DEFAULT_OPEN_TAG = "<think>"
DEFAULT_CLOSE_TAG = "</think>"


class Channel(str, Enum):
    """Output sub-stream of a classified increment."""

    REASONING = "reasoning"
    VISIBLE = "visible"


class SplitterState(str, Enum):
    """Splitter state machine states."""

    NORMAL = "normal"
    MARKER_BUFFER = "marker_buffer"
    REASONING = "reasoning"


@dataclass(frozen=True)
class StreamIncrement:
    """A text fragment and the channel it belongs to."""

    text: str
    channel: Channel


class StreamTagSplitter:
    """State machine splitting a token stream into reasoning and visible text."""

    def __init__(self, open_tag: str = DEFAULT_OPEN_TAG, close_tag: str = DEFAULT_CLOSE_TAG):
        if not open_tag or not close_tag:
            raise ValueError("Marker tags must be non-empty")
        self.open_tag = open_tag
        self.close_tag = close_tag
        self._state = SplitterState.NORMAL
        self._marker_buffer = ""
        self._target_tag = open_tag
        # Channel that was active when buffering started.
        self._buffer_origin = Channel.VISIBLE
        self._reasoning_parts: list[str] = []
        self._visible_parts: list[str] = []

    @property
    def state(self) -> SplitterState:
        return self._state

    @property
    def channel(self) -> Channel:
        """Channel the next character would land in if it starts no marker."""
        if self._state is SplitterState.MARKER_BUFFER:
            return self._buffer_origin
        return Channel.REASONING if self._state is SplitterState.REASONING else Channel.VISIBLE

    @property
    def reasoning_text(self) -> str:
        """Accumulated reasoning text emitted so far."""
        return "".join(self._reasoning_parts)

    @property
    def visible_text(self) -> str:
        """Accumulated visible text emitted so far."""
        return "".join(self._visible_parts)

    def feed(self, chunk: str) -> list[StreamIncrement]:
        """Consume one text increment.

        Returns the classified output produced by this chunk, with adjacent
        characters of the same channel coalesced into one increment.
        """
        out: list[StreamIncrement] = []
        batch: list[str] = []
        batch_channel: Channel | None = None

        def flush_batch() -> None:
            nonlocal batch_channel
            if batch and batch_channel is not None:
                out.append(self._record("".join(batch), batch_channel))
            batch.clear()
            batch_channel = None

        def emit(text: str, channel: Channel) -> None:
            nonlocal batch_channel
            if batch_channel is not None and batch_channel != channel:
                flush_batch()
            batch_channel = channel
            batch.append(text)

        for ch in chunk or "":
            self._step(ch, emit, flush_batch)

        flush_batch()
        return out

    def flush(self) -> list[StreamIncrement]:
        """Emit any unterminated marker buffer; call after the last ``feed``."""
        out: list[StreamIncrement] = []
        if self._state is SplitterState.MARKER_BUFFER:
            if self._marker_buffer:
                out.append(self._record(self._marker_buffer, self._buffer_origin))
            self._marker_buffer = ""
            self._state = self._resting_state(self._buffer_origin)
        return out

    def _step(self, ch: str, emit, flush_batch) -> None:
        """Advance the state machine by one character."""
        if self._state is SplitterState.MARKER_BUFFER:
            candidate = self._marker_buffer + ch
            if candidate == self._target_tag:
                self._marker_buffer = ""
                self._state = (
                    SplitterState.REASONING
                    if self._target_tag == self.open_tag
                    else SplitterState.NORMAL
                )
                return
            if self._target_tag.startswith(candidate):
                self._marker_buffer = candidate
                return
            # Diverged: release the buffered prefix, then re-scan this char.
            emit(self._marker_buffer, self._buffer_origin)
            self._marker_buffer = ""
            self._state = self._resting_state(self._buffer_origin)

        if self._state is SplitterState.NORMAL:
            channel, target = Channel.VISIBLE, self.open_tag
        else:
            channel, target = Channel.REASONING, self.close_tag

        if ch == target[0]:
            flush_batch()
            self._buffer_origin = channel
            self._target_tag = target
            if len(target) == 1:
                self._state = (
                    SplitterState.REASONING if channel is Channel.VISIBLE else SplitterState.NORMAL
                )
                return
            self._marker_buffer = ch
            self._state = SplitterState.MARKER_BUFFER
            return

        emit(ch, channel)

    @staticmethod
    def _resting_state(channel: Channel) -> SplitterState:
        return SplitterState.REASONING if channel is Channel.REASONING else SplitterState.NORMAL

    def _record(self, text: str, channel: Channel) -> StreamIncrement:
        if channel is Channel.REASONING:
            self._reasoning_parts.append(text)
        else:
            self._visible_parts.append(text)
        return StreamIncrement(text=text, channel=channel)


_END = object()
_CANCELLED = object()


async def _pump(chunks: AsyncIterator[str], queue: asyncio.Queue) -> None:
    """Read ``chunks`` from a single task into ``queue``.

    The queue ends with ``_END`` or with the exception that stopped the read.
    """
    try:
        async for chunk in chunks:
            queue.put_nowait(chunk)
    except Exception as e:
        queue.put_nowait(e)
        return
    queue.put_nowait(_END)


async def _next_item(queue: asyncio.Queue, cancel_event: asyncio.Event) -> Any:
    """Wait for the next queued item unless ``cancel_event`` fires first."""
    if cancel_event.is_set():
        return _CANCELLED
    if not queue.empty():
        return queue.get_nowait()
    get_task = asyncio.ensure_future(queue.get())
    cancel_task = asyncio.ensure_future(cancel_event.wait())
    try:
        await asyncio.wait({get_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (get_task, cancel_task):
            if not task.done():
                task.cancel()
    if get_task.done() and not get_task.cancelled():
        return get_task.result()
    return _CANCELLED


async def split_stream(
    chunks: AsyncIterator[str],
    splitter: StreamTagSplitter | None = None,
    cancel_event: asyncio.Event | None = None,
    on_chunk: Callable[[Channel], None] | None = None,
) -> AsyncIterator[StreamIncrement]:
    """Split an async text stream into labeled increments.

    Once ``cancel_event`` is set the stream stops without flushing, also
    while no chunk has arrived yet: the pending read of ``chunks`` is
    cancelled. ``on_chunk`` is called once per input chunk with the channel
    the chunk ended in.
    """
    splitter = splitter or StreamTagSplitter()

    if cancel_event is None:
        async for chunk in chunks:
            increments = splitter.feed(chunk)
            if on_chunk is not None:
                on_chunk(splitter.channel)
            for increment in increments:
                yield increment
        for increment in splitter.flush():
            yield increment
        return

    queue: asyncio.Queue = asyncio.Queue()
    pump = asyncio.ensure_future(_pump(chunks, queue))
    try:
        while True:
            item = await _next_item(queue, cancel_event)
            if item is _CANCELLED:
                return
            if item is _END:
                break
            if isinstance(item, Exception):
                raise item
            increments = splitter.feed(item)
            if on_chunk is not None:
                on_chunk(splitter.channel)
            for increment in increments:
                yield increment
                if cancel_event.is_set():
                    return
    finally:
        if not pump.done():
            pump.cancel()
        await asyncio.wait({pump})

    for increment in splitter.flush():
        yield increment
