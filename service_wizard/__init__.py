"""
Service Wizard Bot - Guided service registration over chat with webhook hand-off

This service walks a chat user through a multi-step wizard that collects the
details needed to register a homelab service (DNS entry or dashboard tile),
then forwards the completed record to an automation webhook.

Key Features:
- Pluggable wizard definitions (one per service type) held in a registry
- Per-chat in-memory sessions with 30min idle TTL and background sweep
- Field validation (IP address, port number, non-empty text) with fixed guidance messages
- Fixed-choice steps rendered as inline keyboards by the transport
- Webhook delivery with bounded retry and linear backoff
- Cancellation available at any time via /cancel

Architecture:
- python-telegram-bot for the chat transport
- FastAPI for health, metrics and direct-send endpoints
- Wizard Engine for conversation logic
- Session Store for per-chat state and expiry
- httpx for webhook delivery
"""

__version__ = "1.0.0"
