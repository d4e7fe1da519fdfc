"""
Configuration for Service Wizard Bot

Environment-driven settings for the chat transport, session store and
webhook dispatcher.
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        logger.warning(f"Invalid {name}, using default {default}")
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        logger.warning(f"Invalid {name}, using default {default}")
        return default


@dataclass
class WizardBotConfig:
    """
    Configuration for the Service Wizard Bot.

    Attributes:
        bot_token: Telegram bot token (required)
        webhook_base_url: Base URL of the automation webhook (None disables delivery)
        default_chat_id: Fallback chat for the direct-send endpoint (optional)
        port: HTTP port for the health/admin API (default: 4000)
        session_ttl: Session idle TTL in seconds (default: 1800 = 30min)
        sweep_interval: Expiry sweep period in seconds (default: session_ttl / 6)
        webhook_max_attempts: Delivery attempts per record (default: 3)
        webhook_retry_delay: Base backoff delay in seconds, multiplied by attempt (default: 1.0)
        webhook_timeout: Per-attempt HTTP timeout in seconds (default: 10.0)
        host_suffix: Domain suffix enforced on DNS hostnames (default: .yairlab)
        log_level: Root log level (default: INFO)
        log_state_transitions: Log wizard state transitions (default: True)
    """

    bot_token: str
    webhook_base_url: Optional[str] = None
    default_chat_id: Optional[int] = None
    port: int = 4000
    session_ttl: int = 1800
    sweep_interval: Optional[float] = None
    webhook_max_attempts: int = 3
    webhook_retry_delay: float = 1.0
    webhook_timeout: float = 10.0
    host_suffix: str = ".yairlab"
    log_level: str = "INFO"
    log_state_transitions: bool = True

    def __post_init__(self):
        """Validate configuration after initialization"""
        if not self.bot_token or not self.bot_token.strip():
            raise ValueError("Missing required environment variable: TELEGRAM_BOT_TOKEN")

        if self.session_ttl <= 0:
            raise ValueError(
                f"session_ttl must be positive, got {self.session_ttl}"
            )

        # Sweep must run more often than sessions expire
        if self.sweep_interval is None:
            self.sweep_interval = self.session_ttl / 6
        if not 0 < self.sweep_interval < self.session_ttl:
            raise ValueError(
                f"sweep_interval must be between 0 and session_ttl ({self.session_ttl}), "
                f"got {self.sweep_interval}"
            )

        if self.webhook_max_attempts < 1:
            raise ValueError(
                f"webhook_max_attempts must be at least 1, got {self.webhook_max_attempts}"
            )

        if self.webhook_retry_delay < 0:
            raise ValueError(
                f"webhook_retry_delay must not be negative, got {self.webhook_retry_delay}"
            )

        if self.webhook_timeout <= 0:
            raise ValueError(
                f"webhook_timeout must be positive, got {self.webhook_timeout}"
            )

        if self.webhook_base_url:
            if not self.webhook_base_url.startswith(("http://", "https://")):
                raise ValueError(
                    f"webhook_base_url must start with http:// or https://, got {self.webhook_base_url}"
                )
            self.webhook_base_url = self.webhook_base_url.rstrip("/")
        else:
            self.webhook_base_url = None
            logger.warning(
                "INCOMING_WEBHOOK_URL not set. "
                "Completed wizards will not be forwarded."
            )

        if not self.host_suffix or not self.host_suffix.strip("."):
            raise ValueError("host_suffix must not be empty")
        if not self.host_suffix.startswith("."):
            self.host_suffix = f".{self.host_suffix}"

        if self.log_state_transitions:
            logger.info(
                f"WizardBotConfig loaded: port={self.port}, "
                f"session_ttl={self.session_ttl}s, sweep_interval={self.sweep_interval}s, "
                f"webhook_configured={self.webhook_base_url is not None}, "
                f"webhook_max_attempts={self.webhook_max_attempts}"
            )

    @staticmethod
    def from_env() -> "WizardBotConfig":
        """
        Load configuration from environment variables.

        Environment Variables:
            TELEGRAM_BOT_TOKEN: Bot token (required)
            INCOMING_WEBHOOK_URL: Webhook base URL (optional)
            DEFAULT_CHAT_ID: Fallback chat id for /send-text (optional)
            PORT: HTTP port (default: 4000)
            SERVICE_WIZARD_SESSION_TTL: Session TTL in seconds (default: 1800)
            SERVICE_WIZARD_SWEEP_INTERVAL: Sweep period in seconds (default: TTL / 6)
            SERVICE_WIZARD_WEBHOOK_MAX_ATTEMPTS: Delivery attempts (default: 3)
            SERVICE_WIZARD_WEBHOOK_RETRY_DELAY: Base backoff in seconds (default: 1.0)
            SERVICE_WIZARD_WEBHOOK_TIMEOUT: Per-attempt timeout in seconds (default: 10.0)
            SERVICE_WIZARD_HOST_SUFFIX: DNS host suffix (default: .yairlab)
            SERVICE_WIZARD_LOG_LEVEL: Log level (default: INFO)
            SERVICE_WIZARD_LOG_STATE_TRANSITIONS: Log state transitions (default: true)

        Returns:
            WizardBotConfig instance loaded from environment

        Raises:
            ValueError: If TELEGRAM_BOT_TOKEN is missing or a setting is out of range
        """
        default_chat_id = None
        raw_chat_id = os.getenv("DEFAULT_CHAT_ID", "").strip()
        if raw_chat_id:
            try:
                default_chat_id = int(raw_chat_id)
            except ValueError:
                logger.warning(f"Invalid DEFAULT_CHAT_ID '{raw_chat_id}', ignoring")

        raw_sweep = os.getenv("SERVICE_WIZARD_SWEEP_INTERVAL")
        sweep_interval = None
        if raw_sweep:
            try:
                sweep_interval = float(raw_sweep)
            except ValueError:
                logger.warning("Invalid SERVICE_WIZARD_SWEEP_INTERVAL, using TTL / 6")

        log_state_transitions = os.getenv(
            "SERVICE_WIZARD_LOG_STATE_TRANSITIONS", "true"
        ).lower() in ("true", "1", "yes")

        return WizardBotConfig(
            bot_token=os.getenv("TELEGRAM_BOT_TOKEN", ""),
            webhook_base_url=os.getenv("INCOMING_WEBHOOK_URL") or None,
            default_chat_id=default_chat_id,
            port=_env_int("PORT", 4000),
            session_ttl=_env_int("SERVICE_WIZARD_SESSION_TTL", 1800),
            sweep_interval=sweep_interval,
            webhook_max_attempts=_env_int("SERVICE_WIZARD_WEBHOOK_MAX_ATTEMPTS", 3),
            webhook_retry_delay=_env_float("SERVICE_WIZARD_WEBHOOK_RETRY_DELAY", 1.0),
            webhook_timeout=_env_float("SERVICE_WIZARD_WEBHOOK_TIMEOUT", 10.0),
            host_suffix=os.getenv("SERVICE_WIZARD_HOST_SUFFIX", ".yairlab"),
            log_level=os.getenv("SERVICE_WIZARD_LOG_LEVEL", "INFO").upper(),
            log_state_transitions=log_state_transitions,
        )
