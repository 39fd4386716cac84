"""Runtime settings: target URLs, credentials, wait budgets

Values come from the environment (a .env file is loaded with python-dotenv) and
the per-wait budgets can be overridden from an optional YAML file.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from loguru import logger
from pydantic import BaseModel, Field

from deckrelay.browser.sanitize import sanitize_credentials


DEFAULT_CONFIG_PATH = "config/deckrelay.yaml"


class WaitSpec(BaseModel):
    """Budget for one kind of wait"""
    timeout: float
    interval: float
    progress_every: float = 60.0


class WaitSettings(BaseModel):
    """Timeouts and poll intervals (seconds) for every wait the workflow performs"""
    chat_ready: WaitSpec = Field(default_factory=lambda: WaitSpec(timeout=9, interval=3))
    login_complete: WaitSpec = Field(default_factory=lambda: WaitSpec(timeout=20, interval=1))
    generation_start: WaitSpec = Field(default_factory=lambda: WaitSpec(timeout=10, interval=1))
    response: WaitSpec = Field(default_factory=lambda: WaitSpec(timeout=120, interval=2, progress_every=15))
    knowledge_option: WaitSpec = Field(default_factory=lambda: WaitSpec(timeout=3, interval=0.5))
    outline: WaitSpec = Field(default_factory=lambda: WaitSpec(timeout=60, interval=1, progress_every=10))
    template_trigger: WaitSpec = Field(default_factory=lambda: WaitSpec(timeout=180, interval=2))
    template_options: WaitSpec = Field(default_factory=lambda: WaitSpec(timeout=10, interval=1))
    generate_button: WaitSpec = Field(default_factory=lambda: WaitSpec(timeout=900, interval=10))
    presentation_redirect: WaitSpec = Field(default_factory=lambda: WaitSpec(timeout=60, interval=2, progress_every=10))
    render: WaitSpec = Field(default_factory=lambda: WaitSpec(timeout=300, interval=2, progress_every=15))

    # Fixed pauses that let UI animations settle between actions
    settle: float = 1.0
    page_load: float = 5.0


class Settings(BaseModel):
    """Everything the workflow needs to know about its environment"""
    openwebui_url: str = "http://localhost:3000"
    presenton_url: str = "http://localhost:5000"
    username: Optional[str] = None
    password: Optional[str] = None
    knowledge_tag: Optional[str] = None
    headless: bool = False
    slow_mo: int = 100
    debug: bool = False
    snapshot_dir: str = "screenshots"
    review_hold_seconds: float = 300.0
    diagnostic_hold_seconds: float = 300.0
    action_attempts: int = 3
    waits: WaitSettings = Field(default_factory=WaitSettings)

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and self.password)

    @property
    def presenton_upload_url(self) -> str:
        return self.presenton_url.rstrip("/") + "/upload"

    def safe_summary(self) -> Dict[str, Any]:
        """Settings as a dict with the password masked, for logging"""
        return sanitize_credentials(self.model_dump(exclude={"waits"}))


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("true", "1", "yes")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={value!r}, using {default}")
        return default


def load_wait_overrides(config_path: str) -> Dict[str, Any]:
    """
    Read the `waits:` section of the YAML config file

    Args:
        config_path: Path to the YAML file

    Returns:
        Raw override mapping (empty if the file or section is absent)
    """
    path = Path(config_path)
    if not path.exists():
        return {}

    with open(path, "r") as f:
        config = yaml.safe_load(f) or {}

    waits = config.get("waits") or {}
    if not isinstance(waits, dict):
        logger.warning(f"Ignoring malformed 'waits' section in {config_path}")
        return {}
    return waits


def build_wait_settings(overrides: Dict[str, Any]) -> WaitSettings:
    """Merge partial overrides (e.g. only a timeout) onto the default wait budgets"""
    base = WaitSettings().model_dump()
    for key, value in overrides.items():
        if key not in base:
            logger.warning(f"Unknown wait '{key}' in config, ignoring")
            continue
        if isinstance(base[key], dict) and isinstance(value, dict):
            base[key].update(value)
        else:
            base[key] = value
    return WaitSettings(**base)


def load_settings(config_path: str = DEFAULT_CONFIG_PATH) -> Settings:
    """
    Build Settings from the environment and the optional YAML config

    Args:
        config_path: YAML file holding wait overrides

    Returns:
        Settings instance
    """
    load_dotenv()

    settings = Settings(
        openwebui_url=os.getenv("OPENWEBUI_URL", "http://localhost:3000"),
        presenton_url=os.getenv("PRESENTON_URL", "http://localhost:5000"),
        username=os.getenv("OPENWEBUI_USERNAME") or os.getenv("OPENWEBUI_EMAIL") or None,
        password=os.getenv("OPENWEBUI_PASSWORD") or None,
        knowledge_tag=os.getenv("KNOWLEDGE_TAG") or None,
        headless=_env_flag("HEADLESS", False),
        debug=_env_flag("DEBUG", False),
        snapshot_dir=os.getenv("SNAPSHOT_DIR", "screenshots"),
        review_hold_seconds=_env_float("REVIEW_HOLD_SECONDS", 300.0),
        diagnostic_hold_seconds=_env_float("DIAGNOSTIC_HOLD_SECONDS", 300.0),
        waits=build_wait_settings(load_wait_overrides(config_path)),
    )

    if not settings.has_credentials:
        logger.warning("Open WebUI credentials not set - login will fall back to signup if required")

    return settings
