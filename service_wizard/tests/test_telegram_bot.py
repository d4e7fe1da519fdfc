"""
Test Suite for the Telegram transport

Uses mocked python-telegram-bot objects; no network access.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from telegram import InlineKeyboardMarkup
from telegram.error import TelegramError

from ..models import Choice
from ..telegram_bot import TelegramBot, TelegramReplyTransport, build_keyboard, event_from_update

CHOICES = [
    Choice(label="HTTP", token="protocol_http", value="http"),
    Choice(label="HTTPS", token="protocol_https", value="https"),
]


def make_update(text="hello", data=None, chat_id=42, user_id=7, username="alice"):
    update = MagicMock()
    update.effective_chat.id = chat_id
    update.effective_user.id = user_id
    update.effective_user.username = username
    update.effective_message.text = text
    if data is None:
        update.callback_query = None
    else:
        update.callback_query.data = data
        update.callback_query.answer = AsyncMock()
        update.callback_query.edit_message_text = AsyncMock()
    return update


def make_application():
    application = MagicMock()
    application.initialize = AsyncMock()
    application.start = AsyncMock()
    application.stop = AsyncMock()
    application.shutdown = AsyncMock()
    application.updater.start_polling = AsyncMock()
    application.updater.stop = AsyncMock()
    application.bot.get_me = AsyncMock(return_value=MagicMock(username="wizard_bot"))
    application.bot.send_message = AsyncMock(return_value=MagicMock(message_id=55))
    return application


@pytest.fixture
def mock_engine():
    return AsyncMock()


@pytest.fixture
def bot(mock_engine):
    return TelegramBot("123456:TEST-TOKEN", mock_engine, application=make_application())


class TestRendering:
    """Keyboards and event extraction"""

    def test_keyboard_one_button_per_row(self):
        markup = build_keyboard(CHOICES)
        assert isinstance(markup, InlineKeyboardMarkup)
        rows = markup.inline_keyboard
        assert len(rows) == 2
        assert rows[0][0].text == "HTTP"
        assert rows[1][0].callback_data == "protocol_https"

    def test_no_keyboard_without_choices(self):
        assert build_keyboard(None) is None
        assert build_keyboard([]) is None

    def test_event_from_update(self):
        event = event_from_update(make_update("svc"))
        assert event.chat_id == 42
        assert event.user_id == 7
        assert event.username == "alice"
        assert event.text == "svc"

    def test_event_without_chat(self):
        update = make_update()
        update.effective_chat = None
        assert event_from_update(update) is None

    def test_event_without_user(self):
        update = make_update()
        update.effective_user = None
        event = event_from_update(update)
        assert event.user_id is None
        assert event.username is None


class TestReplyTransport:
    """Outbound messages"""

    @pytest.mark.asyncio
    async def test_reply_attaches_keyboard(self):
        telegram = AsyncMock()
        await TelegramReplyTransport(telegram).reply(42, "Choose", CHOICES)

        kwargs = telegram.send_message.await_args.kwargs
        assert kwargs["chat_id"] == 42
        assert kwargs["text"] == "Choose"
        assert isinstance(kwargs["reply_markup"], InlineKeyboardMarkup)

    @pytest.mark.asyncio
    async def test_plain_reply(self):
        telegram = AsyncMock()
        await TelegramReplyTransport(telegram).reply(42, "Hi")
        assert telegram.send_message.await_args.kwargs["reply_markup"] is None

    @pytest.mark.asyncio
    async def test_acknowledge_edits_pressed_message(self):
        query = MagicMock()
        query.edit_message_text = AsyncMock()
        await TelegramReplyTransport(AsyncMock(), query).acknowledge_selection(42, "✅ Selected: DNS")
        query.edit_message_text.assert_awaited_once_with("✅ Selected: DNS")

    @pytest.mark.asyncio
    async def test_acknowledge_edit_failure_is_logged(self):
        query = MagicMock()
        query.edit_message_text = AsyncMock(side_effect=TelegramError("message is not modified"))
        await TelegramReplyTransport(AsyncMock(), query).acknowledge_selection(42, "✅")

    @pytest.mark.asyncio
    async def test_acknowledge_without_query_is_noop(self):
        telegram = AsyncMock()
        await TelegramReplyTransport(telegram).acknowledge_selection(42, "✅")
        telegram.send_message.assert_not_awaited()


class TestHandlers:
    """Update routing to the engine"""

    @pytest.mark.asyncio
    async def test_callback_answers_and_routes(self, bot, mock_engine):
        update = make_update(data="protocol_http")
        await bot._on_callback(update, MagicMock())

        update.callback_query.answer.assert_awaited_once()
        event, token, transport = mock_engine.handle_callback.await_args.args
        assert event.chat_id == 42
        assert token == "protocol_http"
        assert isinstance(transport, TelegramReplyTransport)

    @pytest.mark.asyncio
    async def test_callback_without_data(self, bot, mock_engine):
        update = make_update(data="")
        await bot._on_callback(update, MagicMock())
        mock_engine.handle_callback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_text_routes_to_engine(self, bot, mock_engine):
        await bot._on_text(make_update("10.0.0.5"), MagicMock())
        event = mock_engine.handle_text.await_args.args[0]
        assert event.text == "10.0.0.5"

    @pytest.mark.asyncio
    async def test_commands_route_to_engine(self, bot, mock_engine):
        await bot._on_add_service(make_update("/add_service"), MagicMock())
        await bot._on_cancel(make_update("/cancel"), MagicMock())
        await bot._on_help(make_update("/help"), MagicMock())

        mock_engine.show_menu.assert_awaited_once()
        mock_engine.cancel.assert_awaited_once()
        mock_engine.help.assert_awaited_once()

    def test_handlers_registered(self, bot):
        assert bot.application.add_handler.call_count == 6
        bot.application.add_error_handler.assert_called_once()


class TestLifecycle:
    """Start, stop and direct sends"""

    @pytest.mark.asyncio
    async def test_start_marks_ready(self, bot):
        await bot.start()
        assert bot.is_ready is True
        assert bot.username == "wizard_bot"
        bot.application.updater.start_polling.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_start_failure_keeps_bot_unavailable(self, bot):
        bot.application.bot.get_me = AsyncMock(side_effect=TelegramError("Unauthorized"))
        await bot.start()
        assert bot.is_ready is False

    @pytest.mark.asyncio
    async def test_stop(self, bot):
        await bot.start()
        await bot.stop()
        assert bot.is_ready is False
        bot.application.shutdown.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stop_when_not_started(self, bot):
        await bot.stop()
        bot.application.shutdown.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_send_text_returns_message_id(self, bot):
        assert await bot.send_text(42, "ping") == 55
        bot.application.bot.send_message.assert_awaited_once_with(chat_id=42, text="ping")
