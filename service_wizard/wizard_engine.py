"""
Wizard engine for Service Wizard Bot

Drives one conversational turn per inbound chat event: resolves the active
wizard and step, validates input, stores values, advances the session and
hands completed records to the webhook dispatcher.

Per chat the engine moves Idle -> InProgress(0..N-1) -> Completed -> Idle.
Free text sent while a fixed-choice step is waiting, and choice tokens sent
while a free-text step is waiting, are ignored without a reply.
"""

import logging
from typing import Any, Awaitable, Dict, Optional, Protocol, Sequence, Tuple

from service_wizard.models import (
    SERVICE_TYPE_TOKEN_PREFIX, ChatEvent, Choice, FieldSpec, Session, SessionMetadata,
    TurnOutcome, TurnResult, WebhookPayload, WizardDefinition,
)
from service_wizard.registry import WizardRegistry
from service_wizard.session_store import SessionStore
from service_wizard.validation import coerce_value, validate_field
from service_wizard.webhook_client import WebhookDispatcher

logger = logging.getLogger(__name__)


# ============================================================================
# User-facing Messages
# ============================================================================

MENU_PROMPT = "👋 Choose what you want to do:"
HELP_MESSAGE = (
    "I can register new services for you.\n\n"
    "Commands:\n"
    "/add_service - Add a new service\n"
    "/cancel - Cancel current operation\n"
    "/help - Show this message"
)
CANCELLED_MESSAGE = "❌ Service addition cancelled."
NOTHING_TO_CANCEL_MESSAGE = "No active operation to cancel."
UNKNOWN_SERVICE_MESSAGE = "❌ Unknown service type. Please try again."
WIZARD_NOT_FOUND_MESSAGE = "❌ Wizard not found. Please start over with /add_service."
INVALID_STEP_MESSAGE = "❌ Invalid step. Please start over with /add_service."
NOT_FORWARDED_MESSAGE = (
    "⚠️ Service data collected, but failed to send to backend. "
    "Please try again or contact support."
)


class ChatTransport(Protocol):
    """Outbound side of the chat transport, as seen by the engine"""

    async def reply(
        self, chat_id: int, text: str, choices: Optional[Sequence[Choice]] = None
    ) -> None:
        ...

    async def acknowledge_selection(self, chat_id: int, text: str) -> None:
        ...


class WizardEngine:
    """
    Conversational wizard engine.

    Every public operation runs under the chat's lock from the session
    store and returns a TurnResult; no validation or delivery failure
    escapes to the caller.
    """

    def __init__(
        self,
        registry: WizardRegistry,
        store: SessionStore,
        dispatcher: WebhookDispatcher,
        *,
        log_state_transitions: bool = True,
    ):
        self.registry = registry
        self.store = store
        self.dispatcher = dispatcher
        self.log_state_transitions = log_state_transitions

        self._stats = {
            "total_sessions_created": 0,
            "completed_sessions_count": 0,
            "cancelled_sessions_count": 0,
            "delivery_failures_count": 0,
        }

    def stats(self) -> Dict[str, int]:
        return dict(self._stats)

    # ========================================================================
    # Public Operations
    # ========================================================================

    async def show_menu(self, event: ChatEvent, transport: ChatTransport) -> TurnResult:
        """Offer one choice per registered wizard"""
        return await self._guard(event, self._show_menu(event, transport))

    async def help(self, event: ChatEvent, transport: ChatTransport) -> TurnResult:
        return await self._guard(event, self._help(event, transport))

    async def handle_callback(
        self, event: ChatEvent, token: str, transport: ChatTransport
    ) -> TurnResult:
        """Route a button press: menu tokens select a wizard, anything else answers a step"""
        if token.startswith(SERVICE_TYPE_TOKEN_PREFIX):
            service_type = token[len(SERVICE_TYPE_TOKEN_PREFIX):]
            return await self.select_service(event, service_type, transport)
        return await self.submit_choice(event, token, transport)

    async def select_service(
        self, event: ChatEvent, service_type: str, transport: ChatTransport
    ) -> TurnResult:
        return await self._guard(event, self._select_service(event, service_type, transport))

    async def submit_choice(
        self, event: ChatEvent, token: str, transport: ChatTransport
    ) -> TurnResult:
        return await self._guard(event, self._submit_choice(event, token, transport))

    async def handle_text(self, event: ChatEvent, transport: ChatTransport) -> TurnResult:
        return await self._guard(event, self._handle_text(event, transport))

    async def cancel(self, event: ChatEvent, transport: ChatTransport) -> TurnResult:
        return await self._guard(event, self._cancel(event, transport))

    # ========================================================================
    # Turn Handlers
    # ========================================================================

    async def _show_menu(self, event: ChatEvent, transport: ChatTransport) -> TurnResult:
        choices = [
            Choice(label=f"📊 {wizard.display_name}", token=wizard.menu_token, value=wizard.service_type)
            for wizard in self.registry.list_all()
        ]
        await transport.reply(event.chat_id, MENU_PROMPT, choices)
        return TurnResult(TurnOutcome.MENU_SHOWN)

    async def _help(self, event: ChatEvent, transport: ChatTransport) -> TurnResult:
        await transport.reply(event.chat_id, HELP_MESSAGE)
        return TurnResult(TurnOutcome.HELP_SHOWN)

    async def _select_service(
        self, event: ChatEvent, service_type: str, transport: ChatTransport
    ) -> TurnResult:
        wizard = self.registry.lookup(service_type)
        if wizard is None:
            await transport.reply(event.chat_id, UNKNOWN_SERVICE_MESSAGE)
            return TurnResult(TurnOutcome.UNKNOWN_SERVICE, service_type=service_type)

        async with self.store.chat_lock(event.chat_id):
            metadata = SessionMetadata(
                chat_id=event.chat_id,
                user_id=event.user_id,
                username=event.username,
            )
            self.store.create(event.chat_id, service_type, metadata)
            self._stats["total_sessions_created"] += 1
            self._log_transition(event.chat_id, service_type, "idle", "step 0")

            await transport.acknowledge_selection(event.chat_id, f"✅ Selected: {wizard.display_name}")
            first = wizard.fields[0]
            await transport.reply(
                event.chat_id,
                f"Let's add a new {wizard.display_name} service! {first.prompt}\n\n"
                "(You can use /cancel at any time to stop)",
                first.choices or None,
            )
        return TurnResult(TurnOutcome.STARTED, service_type=service_type, step=0)

    async def _submit_choice(
        self, event: ChatEvent, token: str, transport: ChatTransport
    ) -> TurnResult:
        async with self.store.chat_lock(event.chat_id):
            session = self.store.get(event.chat_id)
            if session is None:
                return TurnResult(TurnOutcome.NO_SESSION)

            resolved = await self._resolve(event.chat_id, session, transport)
            if resolved is None:
                return TurnResult(TurnOutcome.RESET, service_type=session.service_type)
            wizard, current = resolved

            choice = current.choice_for(token) if current.is_fixed_choice else None
            if choice is None:
                return TurnResult(
                    TurnOutcome.IGNORED,
                    service_type=session.service_type,
                    step=session.current_step,
                )

            self._store_value(event.chat_id, session, current, choice.value)
            await transport.acknowledge_selection(event.chat_id, f"{current.prompt} ✅ {choice.label}")
            return await self._continue(event, wizard, transport)

    async def _handle_text(self, event: ChatEvent, transport: ChatTransport) -> TurnResult:
        async with self.store.chat_lock(event.chat_id):
            session = self.store.get(event.chat_id)
            if session is None:
                return TurnResult(TurnOutcome.NO_SESSION)

            resolved = await self._resolve(event.chat_id, session, transport)
            if resolved is None:
                return TurnResult(TurnOutcome.RESET, service_type=session.service_type)
            wizard, current = resolved

            # Fixed-choice steps only accept their buttons
            if current.is_fixed_choice:
                return TurnResult(
                    TurnOutcome.IGNORED,
                    service_type=session.service_type,
                    step=session.current_step,
                )

            is_valid, error_msg = validate_field(current.validator, event.text)
            if not is_valid:
                logger.debug(
                    f"Rejected input for '{current.key}' in chat {event.chat_id} ({session.service_type})"
                )
                await transport.reply(event.chat_id, error_msg)
                return TurnResult(
                    TurnOutcome.REJECTED,
                    service_type=session.service_type,
                    step=session.current_step,
                )

            value = coerce_value(current.validator, event.text)
            if current.post_process is not None:
                value = current.post_process(value)

            self._store_value(event.chat_id, session, current, value)
            return await self._continue(event, wizard, transport)

    async def _cancel(self, event: ChatEvent, transport: ChatTransport) -> TurnResult:
        async with self.store.chat_lock(event.chat_id):
            if self.store.is_active(event.chat_id):
                self.store.delete(event.chat_id)
                self._stats["cancelled_sessions_count"] += 1
                self._log_transition(event.chat_id, None, "in progress", "cancelled")
                await transport.reply(event.chat_id, CANCELLED_MESSAGE)
                return TurnResult(TurnOutcome.CANCELLED)

            # Drops an expired leftover, if any
            self.store.delete(event.chat_id)
            await transport.reply(event.chat_id, NOTHING_TO_CANCEL_MESSAGE)
            return TurnResult(TurnOutcome.NOTHING_TO_CANCEL)

    # ========================================================================
    # Helpers
    # ========================================================================

    async def _resolve(
        self, chat_id: int, session: Session, transport: ChatTransport
    ) -> Optional[Tuple[WizardDefinition, FieldSpec]]:
        """Wizard and current field for a session; tears the session down when either is gone"""
        wizard = self.registry.lookup(session.service_type)
        if wizard is None:
            logger.warning(
                f"Wizard '{session.service_type}' no longer registered, resetting chat {chat_id}"
            )
            self.store.delete(chat_id)
            await transport.reply(chat_id, WIZARD_NOT_FOUND_MESSAGE)
            return None

        current = wizard.field_at(session.current_step)
        if current is None:
            logger.warning(
                f"Step {session.current_step} out of range for wizard '{session.service_type}', "
                f"resetting chat {chat_id}"
            )
            self.store.delete(chat_id)
            await transport.reply(chat_id, INVALID_STEP_MESSAGE)
            return None

        return wizard, current

    def _store_value(self, chat_id: int, session: Session, current: FieldSpec, value: Any) -> None:
        self.store.merge_data(chat_id, {current.key: value})
        self.store.advance_step(chat_id)
        self._log_transition(
            chat_id,
            session.service_type,
            f"step {session.current_step}",
            f"step {session.current_step + 1}",
        )

    async def _continue(
        self, event: ChatEvent, wizard: WizardDefinition, transport: ChatTransport
    ) -> TurnResult:
        """Prompt for the next step, or complete the wizard after the last one"""
        step = self.store.current_step_of(event.chat_id)
        next_field = wizard.field_at(step)
        if next_field is not None:
            await transport.reply(event.chat_id, next_field.prompt, next_field.choices or None)
            return TurnResult(TurnOutcome.ADVANCED, service_type=wizard.service_type, step=step)
        return await self._complete(event, wizard, transport)

    async def _complete(
        self, event: ChatEvent, wizard: WizardDefinition, transport: ChatTransport
    ) -> TurnResult:
        """Summarize, deliver, and always clear the session"""
        chat_id = event.chat_id
        delivered = False
        error = None
        try:
            session = self.store.get(chat_id)
            data = dict(session.collected_data) if session else {}
            metadata = self.store.get_metadata(chat_id)

            summary = wizard.format_summary(data)
            logger.info(
                f"Wizard completed: \"{wizard.display_name}\" ({wizard.service_type}) - "
                f"Triggering webhook route: {wizard.webhook_route}"
            )
            logger.info(f"Service data: {data}")

            # user_id and username from the same user
            origin = metadata if metadata is not None else event
            payload = WebhookPayload(
                chat_id=chat_id,
                user_id=origin.user_id,
                username=origin.username,
                service_type=wizard.service_type,
                service=data,
            )
            delivered = await self.dispatcher.send(wizard.webhook_route, payload)

            await transport.reply(chat_id, summary)
            if not delivered:
                logger.error(
                    f"Record for chat {chat_id} ({wizard.service_type}) not forwarded "
                    f"after {self.dispatcher.max_attempts} attempts"
                )
                await transport.reply(chat_id, NOT_FORWARDED_MESSAGE)

        except Exception as e:
            error = str(e)
            logger.exception(f"Error completing wizard for chat {chat_id}: {e}")
            if not delivered:
                await self._safe_reply(transport, chat_id, NOT_FORWARDED_MESSAGE)

        finally:
            self.store.delete(chat_id)

        self._stats["completed_sessions_count"] += 1
        if not delivered:
            self._stats["delivery_failures_count"] += 1
        self._log_transition(chat_id, wizard.service_type, "completed", "idle")
        return TurnResult(
            TurnOutcome.COMPLETED,
            service_type=wizard.service_type,
            step=wizard.total_steps,
            delivered=delivered,
            error=error,
        )

    async def _guard(self, event: ChatEvent, turn: Awaitable[TurnResult]) -> TurnResult:
        try:
            return await turn
        except Exception as e:
            logger.error(f"Error handling chat event for chat {event.chat_id}: {e}")
            return TurnResult(
                TurnOutcome.FAILED,
                step=self.store.current_step_of(event.chat_id),
                error=str(e),
            )

    async def _safe_reply(self, transport: ChatTransport, chat_id: int, text: str) -> None:
        try:
            await transport.reply(chat_id, text)
        except Exception as e:
            logger.error(f"Failed to notify chat {chat_id}: {e}")

    def _log_transition(
        self, chat_id: int, service_type: Optional[str], source: str, target: str
    ) -> None:
        if self.log_state_transitions:
            logger.info(f"Chat {chat_id} [{service_type or '-'}]: {source} -> {target}")
