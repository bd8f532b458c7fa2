"""Telegram messenger adapter using python-telegram-bot v21+.

A thread is a reply chain: a message that is not a reply starts a thread
rooted at itself, and replies to any message of the chain (including the
bot's own) join the root's thread. Thread ids look like ``<chat_id>:<root>``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.constants import ChatAction
from telegram.ext import Application, CallbackQueryHandler, MessageHandler as TGMessageHandler, filters

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
from agent_bridge.storage.reply_chains import ReplyChainIndex

logger = get_logger(__name__)

BUTTON_TEXT_LIMIT = 64


def split_thread_id(thread_id: str) -> tuple[int, int]:
    chat_id, _, root = thread_id.rpartition(":")
    return int(chat_id), int(root)


def build_question_keyboard(question_index: int, question: Question) -> InlineKeyboardMarkup:
    """One row per option, plus a Done row for multi-select questions."""
    rows = [
        [
            InlineKeyboardButton(
                opt.label[:BUTTON_TEXT_LIMIT],
                callback_data=f"q:{question_index}:{option_index}",
            )
        ]
        for option_index, opt in enumerate(question.options)
    ]
    if question.multi_select:
        rows.append([InlineKeyboardButton(CONFIRM_LABEL, callback_data=f"c:{question_index}")])
    return InlineKeyboardMarkup(rows)


class TelegramAdapter(MessengerAdapter):
    """Telegram bot adapter using python-telegram-bot."""

    def __init__(self, bot_id: str, config: dict):
        super().__init__(bot_id, config)
        self._app: Application | None = None  # type: ignore[type-arg]
        # Persisted so replies to messages sent before a restart keep their thread
        self._chains = ReplyChainIndex(config.get("reply_index_path"))
        self._chains.load()

    @property
    def platform_name(self) -> str:
        return Platform.TELEGRAM

    async def start(self) -> None:
        token = self.config.get("token", "")
        if not token:
            raise ValueError(f"Telegram bot token not configured for bot '{self.bot_id}'")

        # Each thread can wait on the agent for minutes; other threads must not queue behind it
        self._app = Application.builder().token(token).concurrent_updates(True).build()
        self._app.add_handler(
            TGMessageHandler(filters.TEXT & ~filters.COMMAND, self._on_telegram_message)
        )
        self._app.add_handler(CallbackQueryHandler(self._on_callback_query))

        await self._app.initialize()
        await self._app.start()
        await self._app.updater.start_polling(drop_pending_updates=True)  # type: ignore[union-attr]
        logger.info("telegram_adapter_started", bot_id=self.bot_id)

    async def stop(self) -> None:
        if self._app:
            await self._app.updater.stop()  # type: ignore[union-attr]
            await self._app.stop()
            await self._app.shutdown()
            logger.info("telegram_adapter_stopped", bot_id=self.bot_id)

    async def send_message(self, message: OutgoingMessage) -> None:
        if not self._app or not self._app.bot:
            return
        chat_id, root = split_thread_id(message.thread_id)
        sent = await self._app.bot.send_message(
            chat_id=chat_id,
            text=message.text,
            reply_to_message_id=root,
        )
        self._chains.remember(chat_id, sent.message_id, root)

    async def send_question(self, thread_id: str, questions: list[Question]) -> None:
        if not self._app or not self._app.bot:
            return
        chat_id, root = split_thread_id(thread_id)
        for question_index, question in enumerate(questions):
            text = question_heading(question)
            descriptions = option_descriptions(question)
            if descriptions:
                text = f"{text}\n\n{descriptions}"
            sent = await self._app.bot.send_message(
                chat_id=chat_id,
                text=text,
                reply_to_message_id=root,
                reply_markup=build_question_keyboard(question_index, question),
            )
            self._chains.remember(chat_id, sent.message_id, root)

    async def send_typing_indicator(self, thread_id: str) -> None:
        if self._app and self._app.bot:
            chat_id, _ = split_thread_id(thread_id)
            await self._app.bot.send_chat_action(chat_id=chat_id, action=ChatAction.TYPING)

    async def _on_telegram_message(self, update: Update, context: Any) -> None:
        if not update.message or not self._message_callback:
            return

        msg = update.message
        chat_id = msg.chat_id
        if not self.mark_seen(f"{chat_id}-{msg.message_id}"):
            return
        if not self.is_allowed_chat(str(chat_id)):
            return
        if msg.from_user and msg.from_user.is_bot:
            return
        text = msg.text or ""
        if not text:
            return

        if msg.reply_to_message:
            root = self._chains.root_of(chat_id, msg.reply_to_message.message_id)
        else:
            root = msg.message_id
        self._chains.remember(chat_id, msg.message_id, root)

        incoming = IncomingMessage(
            platform=Platform.TELEGRAM,
            bot_id=self.bot_id,
            chat_id=str(chat_id),
            thread_id=f"{chat_id}:{root}",
            user_id=str(msg.from_user.id) if msg.from_user else "unknown",
            user_display_name=msg.from_user.full_name if msg.from_user else "Unknown",
            text=text,
            timestamp=msg.date or datetime.now(timezone.utc),
        )

        try:
            await self._message_callback(incoming)
        except Exception as e:
            logger.error("telegram_handler_error", error=str(e), chat_id=str(chat_id))

    async def _on_callback_query(self, update: Update, context: Any) -> None:
        query = update.callback_query
        if query is None:
            return
        await query.answer()
        if not self.mark_seen(f"callback-{query.id}"):
            return
        if query.message is None or not query.data:
            return

        chat_id = query.message.chat.id
        thread_id = f"{chat_id}:{self._chains.root_of(chat_id, query.message.message_id)}"
        parts = query.data.split(":")

        try:
            if parts[0] == "q" and len(parts) == 3 and self._button_callback:
                await self._button_callback(
                    ButtonClick(
                        bot_id=self.bot_id,
                        thread_id=thread_id,
                        question_index=int(parts[1]),
                        option_index=int(parts[2]),
                    )
                )
            elif parts[0] == "c" and len(parts) == 2 and self._confirm_callback:
                await self._confirm_callback(
                    ConfirmClick(bot_id=self.bot_id, thread_id=thread_id, question_index=int(parts[1]))
                )
            else:
                logger.warning("telegram_unknown_callback", data=query.data)
        except Exception as e:
            logger.error("telegram_callback_error", error=str(e), chat_id=str(chat_id))
