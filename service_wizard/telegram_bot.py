"""
Telegram transport for Service Wizard Bot

Maps Telegram updates onto wizard engine calls and renders the engine's
replies, including fixed-choice steps as inline keyboards.
"""

import logging
from typing import Any, Optional, Sequence

from telegram import CallbackQuery, InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from service_wizard.models import ChatEvent, Choice
from service_wizard.wizard_engine import WizardEngine

logger = logging.getLogger(__name__)


def build_keyboard(choices: Optional[Sequence[Choice]]) -> Optional[InlineKeyboardMarkup]:
    """One full-width button per row, or None when there is nothing to choose"""
    if not choices:
        return None
    return InlineKeyboardMarkup(
        [[InlineKeyboardButton(choice.label, callback_data=choice.token)] for choice in choices]
    )


def event_from_update(update: Update) -> Optional[ChatEvent]:
    """ChatEvent for an update, or None when it carries no chat"""
    chat = update.effective_chat
    if chat is None:
        return None
    user = update.effective_user
    message = update.effective_message
    return ChatEvent(
        chat_id=chat.id,
        user_id=user.id if user else None,
        username=user.username if user else None,
        text=(message.text or "") if message else "",
    )


class TelegramReplyTransport:
    """ChatTransport bound to one update; selections edit the pressed message"""

    def __init__(self, bot: Any, query: Optional[CallbackQuery] = None):
        self._bot = bot
        self._query = query

    async def reply(
        self, chat_id: int, text: str, choices: Optional[Sequence[Choice]] = None
    ) -> None:
        await self._bot.send_message(chat_id=chat_id, text=text, reply_markup=build_keyboard(choices))

    async def acknowledge_selection(self, chat_id: int, text: str) -> None:
        if self._query is None:
            return
        try:
            await self._query.edit_message_text(text)
        except TelegramError as e:
            logger.warning(f"Could not update selection message in chat {chat_id}: {e}")


class TelegramBot:
    """
    Telegram front end for the wizard engine.

    Commands: /add_service (also the legacy "/add-service" text), /cancel,
    /help and /start. Button presses go to handle_callback, any other text
    to handle_text.
    """

    def __init__(
        self,
        token: str,
        engine: WizardEngine,
        application: Optional[Application] = None,
    ):
        self.engine = engine
        self.application = application or Application.builder().token(token).build()
        self.is_ready = False
        self.username: Optional[str] = None
        self._register_handlers()

    def _register_handlers(self) -> None:
        app = self.application
        app.add_handler(CommandHandler("add_service", self._on_add_service))
        app.add_handler(MessageHandler(filters.Regex(r"^/add-service\b"), self._on_add_service))
        app.add_handler(CommandHandler("cancel", self._on_cancel))
        app.add_handler(CommandHandler(["help", "start"], self._on_help))
        app.add_handler(CallbackQueryHandler(self._on_callback))
        app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, self._on_text))
        app.add_error_handler(self._on_error)

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def start(self) -> None:
        """
        Verify the token and start polling.

        A failure leaves the bot unavailable but does not raise, so the HTTP
        API keeps serving /health.
        """
        try:
            logger.info("Verifying bot token...")
            await self.application.initialize()
            me = await self.application.bot.get_me()
            self.username = me.username
            logger.info(f"Bot token valid: @{me.username}")

            await self.application.start()
            await self.application.updater.start_polling()
            self.is_ready = True
            logger.info("Telegram bot started successfully")
        except Exception as e:
            logger.error(f"Failed to start Telegram bot: {e}")
            logger.error("HTTP API will continue running, but bot functionality is unavailable")

    async def stop(self) -> None:
        if not self.is_ready:
            return
        self.is_ready = False
        try:
            await self.application.updater.stop()
            await self.application.stop()
            await self.application.shutdown()
            logger.info("Telegram bot stopped")
        except Exception as e:
            logger.warning(f"Error while stopping Telegram bot: {e}")

    async def send_text(self, chat_id: int, text: str) -> int:
        """Send a plain message, returning its message id"""
        message = await self.application.bot.send_message(chat_id=chat_id, text=text)
        return message.message_id

    def transport(self, query: Optional[CallbackQuery] = None) -> TelegramReplyTransport:
        return TelegramReplyTransport(self.application.bot, query)

    # ========================================================================
    # Update Handlers
    # ========================================================================

    async def _on_add_service(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        event = event_from_update(update)
        if event:
            await self.engine.show_menu(event, self.transport())

    async def _on_cancel(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        event = event_from_update(update)
        if event:
            await self.engine.cancel(event, self.transport())

    async def _on_help(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        event = event_from_update(update)
        if event:
            await self.engine.help(event, self.transport())

    async def _on_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        query = update.callback_query
        if query is None:
            return
        # Stop the client spinner whatever the engine decides
        await query.answer()

        event = event_from_update(update)
        if event is None or not query.data:
            return
        await self.engine.handle_callback(event, query.data, self.transport(query))

    async def _on_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        event = event_from_update(update)
        if event:
            await self.engine.handle_text(event, self.transport())

    async def _on_error(self, update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        logger.error(f"Error while handling Telegram update: {context.error}")
