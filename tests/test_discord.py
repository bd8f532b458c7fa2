from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from agent_bridge.messenger.discord_adapter import DiscordAdapter, _ConfirmButton, _OptionButton
from agent_bridge.messenger.models import ButtonClick, ConfirmClick


@pytest.fixture
def adapter():
    adapter = DiscordAdapter("dc", {"token": "x"})
    adapter.clicks = []
    adapter.messages = []

    async def on_click(click):
        adapter.clicks.append(click)

    async def on_message(message):
        adapter.messages.append(message)

    adapter.on_button(on_click)
    adapter.on_confirm(on_click)
    adapter.on_message(on_message)
    return adapter


def _interaction(interaction_id: int):
    return SimpleNamespace(id=interaction_id, response=SimpleNamespace(defer=AsyncMock()))


def _dm(message_id: int, text: str):
    return SimpleNamespace(
        id=message_id,
        channel=SimpleNamespace(id=555),
        author=SimpleNamespace(id=7, display_name="Sam", bot=False),
        content=text,
        created_at=datetime(2026, 1, 5, tzinfo=timezone.utc),
    )


@pytest.mark.asyncio
async def test_option_button_layout(adapter):
    button = _OptionButton(adapter, "555", 0, 2, "Formal")
    assert button.custom_id == "ab:q:555:0:2"
    assert button.label == "Formal"

    long_label = _OptionButton(adapter, "555", 1, 0, "x" * 120)
    assert len(long_label.label) == 80


@pytest.mark.asyncio
async def test_confirm_button_layout(adapter):
    button = _ConfirmButton(adapter, "555", 1)
    assert button.custom_id == "ab:c:555:1"
    assert button.label == "Done"


@pytest.mark.asyncio
async def test_duplicate_interaction_dispatched_once(adapter):
    click = ButtonClick(bot_id="dc", thread_id="555", question_index=0, option_index=1)
    await adapter.dispatch_click("1", click)
    await adapter.dispatch_click("1", click)
    assert adapter.clicks == [click]

    await adapter.dispatch_click("2", click)
    assert len(adapter.clicks) == 2


@pytest.mark.asyncio
async def test_button_click_defers_and_dispatches(adapter):
    button = _OptionButton(adapter, "555", 0, 1, "Casual")
    interaction = _interaction(42)

    await button.callback(interaction)
    await button.callback(interaction)

    interaction.response.defer.assert_awaited()
    assert len(adapter.clicks) == 1
    click = adapter.clicks[0]
    assert (click.bot_id, click.thread_id, click.question_index, click.option_index) == ("dc", "555", 0, 1)
    assert click.label == "Casual"


@pytest.mark.asyncio
async def test_confirm_click_dispatches_confirm(adapter):
    await _ConfirmButton(adapter, "555", 2).callback(_interaction(43))
    assert adapter.clicks == [ConfirmClick(bot_id="dc", thread_id="555", question_index=2)]


@pytest.mark.asyncio
async def test_direct_message_is_one_thread(adapter):
    await adapter._on_discord_message(_dm(1, "Draft a reply"))
    await adapter._on_discord_message(_dm(1, "Draft a reply"))
    await adapter._on_discord_message(_dm(2, "shorter"))

    assert [m.text for m in adapter.messages] == ["Draft a reply", "shorter"]
    assert {m.thread_id for m in adapter.messages} == {"555"}
    assert adapter.messages[0].user_display_name == "Sam"


@pytest.mark.asyncio
async def test_disallowed_channel_ignored():
    adapter = DiscordAdapter("dc", {"token": "x", "allowed_chat_ids": ["999"]})
    received = []

    async def on_message(message):
        received.append(message)

    adapter.on_message(on_message)
    await adapter._on_discord_message(_dm(1, "hi"))
    assert received == []
