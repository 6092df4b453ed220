"""Telegram transport built on python-telegram-bot."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.constants import ParseMode
from telegram.error import BadRequest, TelegramError
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from taskbot.models import InboundMessage
from taskbot.presenter import Presenter
from taskbot.screens import Screen

if TYPE_CHECKING:
    from telegram import CallbackQuery, Message

    from taskbot.callbacks import CallbackRouter
    from taskbot.commands import CommandDispatcher
    from taskbot.flow import TaskAssignmentFlow

LOGGER = logging.getLogger(__name__)

COMMANDS = ("start", "list", "projects", "help", "add", "process")

_APOLOGY = "⚠️ Something went wrong. Please try again."


def to_reply_markup(screen: Screen) -> InlineKeyboardMarkup | None:
    """Convert screen button rows into an inline keyboard (None without buttons)."""

    rows = [
        [InlineKeyboardButton(button.label, callback_data=button.data) for button in row]
        for row in screen.buttons
        if row
    ]
    return InlineKeyboardMarkup(rows) if rows else None


def to_inbound(message: Message, user_id: int) -> InboundMessage | None:
    """Normalize a Telegram message; None when it carries neither text nor caption."""

    text = message.text or message.caption or ""
    if not text:
        return None
    first_name = message.from_user.first_name if message.from_user else ""
    return InboundMessage(
        conversation_id=message.chat_id,
        user_id=user_id,
        text=text,
        first_name=first_name,
        is_forwarded=message.forward_origin is not None,
        raw_ref=message.message_id,
    )


class TelegramAdapter(Presenter):
    """Long-polling bot that feeds the core and renders its screens.

    Message references handed to the core are Telegram message ids.
    """

    def __init__(self, token: str) -> None:
        self._token = token
        self._application: Application | None = None
        self._flow: TaskAssignmentFlow | None = None
        self._commands: CommandDispatcher | None = None
        self._callbacks: CallbackRouter | None = None

    def bind(self, flow: TaskAssignmentFlow, commands: CommandDispatcher, callbacks: CallbackRouter) -> None:
        """Attach the core; the flow needs this adapter as its presenter first."""

        self._flow = flow
        self._commands = commands
        self._callbacks = callbacks

    def build(self) -> Application:
        application = ApplicationBuilder().token(self._token).build()
        application.add_handler(CommandHandler(list(COMMANDS), self._handle_command))
        application.add_handler(CallbackQueryHandler(self._handle_callback))
        application.add_handler(
            MessageHandler((filters.TEXT | filters.CAPTION) & ~filters.COMMAND, self._handle_text)
        )
        application.add_error_handler(self._handle_error)
        self._application = application
        return application

    async def start(self) -> None:
        application = self._application or self.build()
        await application.initialize()
        await application.start()
        await application.updater.start_polling(allowed_updates=["message", "callback_query"])
        LOGGER.info("Telegram polling started")

    async def stop(self) -> None:
        if self._application is None:
            return
        if self._application.updater.running:
            await self._application.updater.stop()
        await self._application.stop()
        await self._application.shutdown()
        LOGGER.info("Telegram adapter stopped")

    # -- Presenter ---------------------------------------------------------------

    async def deliver(self, conversation_id: int, screen: Screen, replace: Any = None) -> Any:
        if self._application is None:
            raise RuntimeError("Telegram adapter is not started")
        bot = self._application.bot
        markup = to_reply_markup(screen)
        if replace is not None:
            try:
                await bot.edit_message_text(
                    screen.text,
                    chat_id=conversation_id,
                    message_id=replace,
                    parse_mode=ParseMode.HTML,
                    reply_markup=markup,
                )
                return replace
            except BadRequest as exc:
                if "message is not modified" in str(exc).lower():
                    return replace
                LOGGER.warning("Could not edit message %s, sending a new one: %s", replace, exc)
        sent = await bot.send_message(
            conversation_id,
            screen.text,
            parse_mode=ParseMode.HTML,
            reply_markup=markup,
        )
        return sent.message_id

    # -- handlers ------------------------------------------------------------------

    async def _handle_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if self._commands is None:
            raise RuntimeError("Telegram adapter is not bound")
        if update.message is None or update.effective_user is None:
            return
        inbound = to_inbound(update.message, update.effective_user.id)
        if inbound is None:
            return
        screen = await self._commands.dispatch(inbound)
        if screen is not None:
            await self.deliver(inbound.conversation_id, screen)

    async def _handle_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if self._flow is None:
            raise RuntimeError("Telegram adapter is not bound")
        if update.message is None or update.effective_user is None:
            return
        inbound = to_inbound(update.message, update.effective_user.id)
        if inbound is None:
            return
        consumed = await self._flow.inbound_text(
            inbound.conversation_id,
            inbound.user_id,
            inbound.text,
            raw_ref=inbound.raw_ref,
            is_forwarded=inbound.is_forwarded,
        )
        if not consumed:
            LOGGER.debug("Ignored message %s in chat %s", inbound.raw_ref, inbound.conversation_id)

    async def _handle_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if self._callbacks is None:
            raise RuntimeError("Telegram adapter is not bound")
        query = update.callback_query
        if query is None or query.message is None or update.effective_user is None:
            return
        conversation_id = query.message.chat.id
        reply = await self._callbacks.handle(query.data or "", conversation_id, update.effective_user.id)
        await _safe_answer(query, reply.toast)
        if reply.screen is not None:
            await self.deliver(conversation_id, reply.screen, replace=query.message.message_id)

    async def _handle_error(self, update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        LOGGER.error("Error while handling update %s", update, exc_info=context.error)
        if not isinstance(update, Update) or update.effective_chat is None:
            return
        if update.callback_query is not None:
            await _safe_answer(update.callback_query, _APOLOGY)
        try:
            await context.bot.send_message(update.effective_chat.id, _APOLOGY)
        except TelegramError as exc:
            LOGGER.warning("Could not send error notice: %s", exc)


async def _safe_answer(query: CallbackQuery, text: str | None = None) -> None:
    """Answer a callback query; stale or already-answered queries are only logged."""

    try:
        await query.answer(text)
    except TelegramError as exc:
        LOGGER.warning("Could not answer callback query %s: %s", query.id, exc)
