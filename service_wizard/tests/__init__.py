"""
Tests for Service Wizard Bot

Test suite covering:
- Field validators and value post-processing
- Wizard definitions and registry
- Session store expiry, sweep and per-chat locking
- Webhook delivery and retry
- Wizard engine conversation flows
- Telegram adapter and HTTP API

Run tests with:
    python -m pytest service_wizard/tests/ -v
    python -m pytest service_wizard/tests/test_wizard_flow.py -v
"""
