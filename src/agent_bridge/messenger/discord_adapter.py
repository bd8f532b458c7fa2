"""Discord messenger adapter using discord.py v2+.

A message posted in a text channel opens a Discord thread on it; messages
inside that thread are follow-ups. The thread id is the Discord thread's
channel id.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

import discord
from discord.ext import commands

from agent_bridge.core.questions import Question
from agent_bridge.core.types import Platform
from agent_bridge.log import get_logger
from agent_bridge.messenger.base import (
    CONFIRM_LABEL,
    MessengerAdapter,
    option_descriptions,
    question_heading,
)
from agent_bridge.messenger.models import ButtonClick, ConfirmClick, IncomingMessage, OutgoingMessage

logger = get_logger(__name__)

MESSAGE_LIMIT = 2000
BUTTON_LABEL_LIMIT = 80
THREAD_NAME_LIMIT = 90


class _OptionButton(discord.ui.Button):
    def __init__(self, adapter: DiscordAdapter, thread_id: str, question_index: int, option_index: int, label: str):
        super().__init__(
            label=label[:BUTTON_LABEL_LIMIT],
            style=discord.ButtonStyle.secondary,
            custom_id=f"ab:q:{thread_id}:{question_index}:{option_index}",
        )
        self._adapter = adapter
        self._click = ButtonClick(
            bot_id=adapter.bot_id,
            thread_id=thread_id,
            question_index=question_index,
            option_index=option_index,
            label=label,
        )

    async def callback(self, interaction: discord.Interaction) -> None:
        await interaction.response.defer()
        await self._adapter.dispatch_click(str(interaction.id), self._click)


class _ConfirmButton(discord.ui.Button):
    def __init__(self, adapter: DiscordAdapter, thread_id: str, question_index: int):
        super().__init__(
            label=CONFIRM_LABEL,
            style=discord.ButtonStyle.primary,
            custom_id=f"ab:c:{thread_id}:{question_index}",
        )
        self._adapter = adapter
        self._click = ConfirmClick(bot_id=adapter.bot_id, thread_id=thread_id, question_index=question_index)

    async def callback(self, interaction: discord.Interaction) -> None:
        await interaction.response.defer()
        await self._adapter.dispatch_click(str(interaction.id), self._click)


class DiscordAdapter(MessengerAdapter):
    """Discord bot adapter using discord.py."""

    def __init__(self, bot_id: str, config: dict):
        super().__init__(bot_id, config)
        intents = discord.Intents.default()
        intents.message_content = True
        self._bot = commands.Bot(command_prefix="!", intents=intents)
        self._task: asyncio.Task[Any] | None = None
        self._ready = asyncio.Event()

        @self._bot.event
        async def on_ready() -> None:
            logger.info("discord_bot_ready", user=str(self._bot.user), bot_id=self.bot_id)
            self._ready.set()

        @self._bot.event
        async def on_message(message: discord.Message) -> None:
            if message.author == self._bot.user or message.author.bot:
                return
            await self._on_discord_message(message)

    @property
    def platform_name(self) -> str:
        return Platform.DISCORD

    async def start(self) -> None:
        token = self.config.get("token", "")
        if not token:
            raise ValueError(f"Discord bot token not configured for bot '{self.bot_id}'")

        self._task = asyncio.create_task(self._bot.start(token))
        try:
            await asyncio.wait_for(self._ready.wait(), timeout=30)
        except asyncio.TimeoutError:
            logger.warning("discord_ready_timeout", bot_id=self.bot_id)

        logger.info("discord_adapter_started", bot_id=self.bot_id)

    async def stop(self) -> None:
        await self._bot.close()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning("discord_task_error", error=str(e))
        logger.info("discord_adapter_stopped", bot_id=self.bot_id)

    async def _channel(self, thread_id: str) -> discord.abc.Messageable | None:
        channel = self._bot.get_channel(int(thread_id))
        if channel is None:
            try:
                channel = await self._bot.fetch_channel(int(thread_id))
            except discord.DiscordException:
                logger.error("discord_channel_not_found", thread_id=thread_id)
                return None
        if not isinstance(channel, (discord.Thread, discord.TextChannel, discord.DMChannel)):
            return None
        return channel

    async def send_message(self, message: OutgoingMessage) -> None:
        channel = await self._channel(message.thread_id)
        if channel is None:
            return
        text = message.text
        while text:
            chunk = text[:MESSAGE_LIMIT]
            text = text[MESSAGE_LIMIT:]
            await channel.send(chunk)

    async def send_question(self, thread_id: str, questions: list[Question]) -> None:
        channel = await self._channel(thread_id)
        if channel is None:
            return
        for question_index, question in enumerate(questions):
            view = discord.ui.View(timeout=None)
            for option_index, opt in enumerate(question.options):
                view.add_item(_OptionButton(self, thread_id, question_index, option_index, opt.label))
            if question.multi_select:
                view.add_item(_ConfirmButton(self, thread_id, question_index))

            content = f"**{question_heading(question)}**"
            descriptions = option_descriptions(question)
            if descriptions:
                content = f"{content}\n{descriptions}"
            await channel.send(content=content[:MESSAGE_LIMIT], view=view)

    async def send_typing_indicator(self, thread_id: str) -> None:
        channel = await self._channel(thread_id)
        if channel is not None:
            await channel.typing()

    async def dispatch_click(self, event_key: str, click: ButtonClick | ConfirmClick) -> None:
        if not self.mark_seen(f"interaction-{event_key}"):
            return
        try:
            if isinstance(click, ButtonClick) and self._button_callback:
                await self._button_callback(click)
            elif isinstance(click, ConfirmClick) and self._confirm_callback:
                await self._confirm_callback(click)
        except Exception as e:
            logger.error("discord_click_error", error=str(e), thread_id=click.thread_id)

    async def _on_discord_message(self, message: discord.Message) -> None:
        if not self._message_callback:
            return
        if not self.mark_seen(f"{message.channel.id}-{message.id}"):
            return

        channel = message.channel
        parent_id = channel.parent_id if isinstance(channel, discord.Thread) else channel.id
        if not self.is_allowed_chat(str(parent_id)):
            return

        text = message.content or ""
        if not text:
            return

        if isinstance(channel, discord.Thread):
            thread_id = str(channel.id)
        elif isinstance(channel, discord.TextChannel):
            thread = await message.create_thread(name=text[:THREAD_NAME_LIMIT])
            thread_id = str(thread.id)
        else:
            # DMs have no threads; the whole DM is one thread
            thread_id = str(channel.id)

        incoming = IncomingMessage(
            platform=Platform.DISCORD,
            bot_id=self.bot_id,
            chat_id=str(parent_id),
            thread_id=thread_id,
            user_id=str(message.author.id),
            user_display_name=message.author.display_name,
            text=text,
            timestamp=message.created_at or datetime.now(timezone.utc),
        )

        try:
            await self._message_callback(incoming)
        except Exception as e:
            logger.error("discord_handler_error", error=str(e), channel_id=str(channel.id))
