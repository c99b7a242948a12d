"""Configuration for steerbrowser.

Two layers:
    EnvConfig: environment variables (and an optional ``.env`` file) read via
        pydantic-settings.
    BrowserConfig: the per-session policy (timeouts, retries, observe mode)
        threaded explicitly through BrowserSession and Page.

All durations are expressed in milliseconds.
"""

import logging
import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()

logger = logging.getLogger(__name__)


class EnvConfig(BaseSettings):
    """Environment variable configuration using pydantic-settings."""

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=True,
        extra='allow'
    )

    # Logging
    STEERBROWSER_LOGGING_LEVEL: str = Field(default='info')
    CDP_LOGGING_LEVEL: str = Field(default='WARNING')

    # Debug endpoint
    STEERBROWSER_HOST: str = Field(default='127.0.0.1')
    STEERBROWSER_PORT: int = Field(default=9222)

    # Session policy defaults
    STEERBROWSER_CONNECTION_RETRIES: int = Field(default=10)
    STEERBROWSER_NAVIGATION_TIMEOUT: int = Field(default=30000)
    STEERBROWSER_OBSERVE: bool = Field(default=False)


class Config:
    """Process-wide view of the environment.

    Re-reads environment variables on every access so tests and embedding
    applications can change them at runtime.
    """

    _instance: 'Config | None' = None

    def __new__(cls) -> 'Config':
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @property
    def LOGGING_LEVEL(self) -> str:
        return os.getenv('STEERBROWSER_LOGGING_LEVEL', 'info').lower()

    @property
    def CDP_LOGGING_LEVEL(self) -> str:
        return os.getenv('CDP_LOGGING_LEVEL', 'WARNING').upper()

    @property
    def HOST(self) -> str:
        return os.getenv('STEERBROWSER_HOST', '127.0.0.1')

    @property
    def PORT(self) -> int:
        return int(os.getenv('STEERBROWSER_PORT', '9222'))


CONFIG = Config()


class BrowserConfig(BaseModel):
    """Policy shared by the session manager, the navigation synchronizer and page actions.

    Attributes:
        navigation_timeout: Upper bound for an awaited action to settle. Must be positive.
        retry_interval: Polling interval for condition waits.
        retry_timeout: Upper bound for condition waits. ``0`` checks once.
        observe: Delay every action by ``observe_time`` so a human can follow along.
        observe_time: Delay applied before each action when ``observe`` is on.
        wait_for_navigation: Default for whether actions await navigation settlement.
        connect_retries: Transport connection attempts before giving up.
        connect_retry_delay: Delay between transport connection attempts.
        reconnect_attempts: Reachability polls after a lost transport or crash.
        reconnect_delay: Delay between reachability polls.
        url_rewrites: Host rewrites applied when normalizing navigation URLs,
            e.g. ``{'localhost': '127.0.0.1:3000'}``.
        follow_new_tabs: Switch the session to newly created page targets.
        ignore_ssl_errors: Ask the browser to ignore certificate errors.
        highlight_on_action: Outline elements before clicking or tapping them.
        highlight_time: How long a highlight stays on screen.
    """

    model_config = ConfigDict(extra='forbid', validate_assignment=True)

    navigation_timeout: int = Field(default=30000, gt=0)
    retry_interval: int = Field(default=100, ge=0)
    retry_timeout: int = Field(default=10000, ge=0)
    observe: bool = False
    observe_time: int = Field(default=3000, ge=0)
    wait_for_navigation: bool = True
    connect_retries: int = Field(default=10, ge=1)
    connect_retry_delay: int = Field(default=1000, ge=0)
    reconnect_attempts: int = Field(default=10, ge=1)
    reconnect_delay: int = Field(default=1000, ge=0)
    url_rewrites: dict[str, str] = Field(default_factory=dict)
    follow_new_tabs: bool = True
    ignore_ssl_errors: bool = False
    highlight_on_action: bool = False
    highlight_time: int = Field(default=1000, ge=0)

    @classmethod
    def from_env(cls, **overrides) -> 'BrowserConfig':
        """Build a config seeded from the environment, with explicit overrides on top."""
        # Fresh env config picks up runtime changes
        env_config = EnvConfig()
        values = {
            'connect_retries': env_config.STEERBROWSER_CONNECTION_RETRIES,
            'navigation_timeout': env_config.STEERBROWSER_NAVIGATION_TIMEOUT,
            'observe': env_config.STEERBROWSER_OBSERVE,
        }
        values.update(overrides)
        logger.debug(f'Browser config from environment: {values}')
        return cls(**values)


class NavigationOptions(BaseModel):
    """Per-action overrides for navigation waiting.

    Unset fields fall back to the session's BrowserConfig via ``resolve``.
    """

    model_config = ConfigDict(extra='forbid')

    wait_for_navigation: bool | None = None
    navigation_timeout: int | None = Field(default=None, gt=0)
    headers: dict[str, str] | None = None

    def resolve(self, config: BrowserConfig) -> 'NavigationOptions':
        return NavigationOptions(
            wait_for_navigation=(
                config.wait_for_navigation if self.wait_for_navigation is None else self.wait_for_navigation
            ),
            navigation_timeout=(
                config.navigation_timeout if self.navigation_timeout is None else self.navigation_timeout
            ),
            headers=self.headers,
        )
