import asyncio

import pytest

from ai_coding_cli.streaming import (
    Channel,
    SplitterState,
    StreamIncrement,
    StreamTagSplitter,
    split_stream,
)


def _split(text: str, pieces: list[str] | None = None) -> StreamTagSplitter:
    splitter = StreamTagSplitter()
    for piece in pieces if pieces is not None else [text]:
        splitter.feed(piece)
    splitter.flush()
    return splitter


def test_text_without_markers_is_entirely_visible():
    text = "Plain answer with <angle> brackets, a < b and </tags>."
    splitter = _split(text)

    assert splitter.visible_text == text
    assert splitter.reasoning_text == ""


def test_reasoning_is_separated_from_visible_text():
    splitter = _split("<think>plan the fix</think>Here is the fix.")

    assert splitter.reasoning_text == "plan the fix"
    assert splitter.visible_text == "Here is the fix."
    assert splitter.state is SplitterState.NORMAL


def test_feed_coalesces_adjacent_characters_per_channel():
    splitter = StreamTagSplitter()

    out = splitter.feed("ab<think>cd</think>ef")

    assert out == [
        StreamIncrement("ab", Channel.VISIBLE),
        StreamIncrement("cd", Channel.REASONING),
        StreamIncrement("ef", Channel.VISIBLE),
    ]


@pytest.mark.parametrize(
    "text",
    [
        "<think>short</think>answer",
        "before<think>a < b </thin still thinking</think>after <thinking> done",
        "<<think>>x</think></think>",
        "no reasoning at all",
    ],
)
def test_split_position_does_not_change_the_result(text):
    whole = _split(text)

    for cut in range(len(text) + 1):
        two = _split(text, [text[:cut], text[cut:]])
        assert two.visible_text == whole.visible_text
        assert two.reasoning_text == whole.reasoning_text

    per_char = _split(text, list(text))
    assert per_char.visible_text == whole.visible_text
    assert per_char.reasoning_text == whole.reasoning_text


def test_diverging_character_starts_a_new_marker_attempt():
    splitter = _split("<<think>inner</think>")

    assert splitter.visible_text == "<"
    assert splitter.reasoning_text == "inner"


def test_partial_open_marker_is_recovered_as_visible_on_flush():
    splitter = StreamTagSplitter()
    splitter.feed("answer <thi")

    assert splitter.state is SplitterState.MARKER_BUFFER
    assert splitter.visible_text == "answer "

    out = splitter.flush()

    assert out == [StreamIncrement("<thi", Channel.VISIBLE)]
    assert splitter.visible_text == "answer <thi"
    assert splitter.state is SplitterState.NORMAL


def test_partial_close_marker_is_recovered_as_reasoning_on_flush():
    splitter = StreamTagSplitter()
    splitter.feed("<think>still going </thi")
    splitter.flush()

    assert splitter.reasoning_text == "still going </thi"
    assert splitter.visible_text == ""
    assert splitter.state is SplitterState.REASONING


def test_unterminated_reasoning_keeps_all_text():
    splitter = _split("<think>never closed")

    assert splitter.reasoning_text == "never closed"
    assert splitter.visible_text == ""


def test_custom_markers():
    splitter = StreamTagSplitter("[[", "]]")
    splitter.feed("a[[b]]c[d]")
    splitter.flush()

    assert splitter.reasoning_text == "b"
    assert splitter.visible_text == "ac[d]"


def test_empty_markers_are_rejected():
    with pytest.raises(ValueError):
        StreamTagSplitter("", "</think>")


async def _chunks(*parts: str):
    for part in parts:
        await asyncio.sleep(0)
        yield part


@pytest.mark.asyncio
async def test_split_stream_yields_labeled_increments_and_flushes():
    increments = [inc async for inc in split_stream(_chunks("<thi", "nk>x</think>y <th"))]

    reasoning = "".join(i.text for i in increments if i.channel is Channel.REASONING)
    visible = "".join(i.text for i in increments if i.channel is Channel.VISIBLE)
    assert reasoning == "x"
    assert visible == "y <th"


@pytest.mark.asyncio
async def test_split_stream_stops_when_cancelled():
    cancel = asyncio.Event()
    seen: list[str] = []

    async for inc in split_stream(_chunks("one ", "two ", "three"), cancel_event=cancel):
        seen.append(inc.text)
        cancel.set()

    assert seen == ["one "]


@pytest.mark.asyncio
async def test_split_stream_reports_channel_once_per_chunk():
    channels: list[Channel] = []

    increments = [
        inc
        async for inc in split_stream(
            _chunks("ab<think>cd", "e</think>f", "<thi"),
            on_chunk=channels.append,
        )
    ]

    assert channels == [Channel.REASONING, Channel.VISIBLE, Channel.VISIBLE]
    assert "".join(i.text for i in increments if i.channel is Channel.VISIBLE) == "abf<thi"


@pytest.mark.asyncio
async def test_split_stream_stops_while_waiting_for_a_silent_source():
    cancel = asyncio.Event()
    closed = asyncio.Event()

    async def silent_after_first_chunk():
        try:
            yield "first "
            await asyncio.Event().wait()
            yield "never"
        finally:
            closed.set()

    async def consume() -> list[str]:
        return [
            inc.text
            async for inc in split_stream(silent_after_first_chunk(), cancel_event=cancel)
        ]

    task = asyncio.create_task(consume())
    await asyncio.sleep(0.05)
    cancel.set()
    seen = await asyncio.wait_for(task, timeout=2.0)

    assert seen == ["first "]
    assert closed.is_set()


@pytest.mark.asyncio
async def test_split_stream_with_cancel_event_propagates_source_errors():
    async def failing():
        yield "partial"
        raise RuntimeError("connection reset")

    seen: list[str] = []
    with pytest.raises(RuntimeError, match="connection reset"):
        async for inc in split_stream(failing(), cancel_event=asyncio.Event()):
            seen.append(inc.text)

    assert seen == ["partial"]
