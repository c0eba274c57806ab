"""Configuration and LangSmith setup."""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml


# Default values
DEFAULT_NAME = "npm-vulnerability-scanner"
DEFAULT_PUSH_STRATEGY = "pr_default_commit"
DEFAULT_UPDATE_PUSH_STRATEGY = "none"

# Fleet limits (load control against GitHub and the registry)
DEFAULT_MAX_REPOSITORIES = 25
DEFAULT_CONCURRENCY = 2
DEFAULT_IDLE_HOURS = 24

# Config file path
CONFIG_PATH = ".auditbot/auditbot-config.yml"

AUDIT_LEVELS = ("info", "low", "moderate", "high", "critical")
PUSH_STRATEGIES = (
    "none",
    "pr",
    "pr_default",
    "pr_default_commit",
    "commit",
    "commit_default",
)


@dataclass
class AuditSettings:
    """What to audit and which findings to act on."""

    level: Optional[str] = None
    ignore_dev: bool = False
    force: bool = False
    excluded_packages: list[str] = field(default_factory=list)
    excluded_advisory_ids: list[str] = field(default_factory=list)


@dataclass
class PushSettings:
    """How changes are committed back."""

    strategy: str = DEFAULT_PUSH_STRATEGY
    update_strategy: str = DEFAULT_UPDATE_PUSH_STRATEGY
    labels: list[str] = field(default_factory=list)


@dataclass
class RepoFilter:
    """Regular expressions matched against ``owner/name``."""

    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)

    def matches(self, slug: str) -> bool:
        if self.include and not any(re.search(p, slug) for p in self.include):
            return False
        return not any(re.search(p, slug) for p in self.exclude)


@dataclass
class FleetSettings:
    """Scheduled fleet audit settings."""

    owners: list[str] = field(default_factory=list)
    repos: RepoFilter = field(default_factory=RepoFilter)
    max_repositories: int = DEFAULT_MAX_REPOSITORIES
    concurrency: int = DEFAULT_CONCURRENCY
    idle_hours: int = DEFAULT_IDLE_HOURS


@dataclass
class WebhookSettings:
    secret: Optional[str] = None


@dataclass
class StorageSettings:
    home: Path = field(default_factory=lambda: Path.home() / ".auditbot")


@dataclass
class AuditbotConfig:
    """Main configuration class."""

    version: str = "1.0"
    name: str = DEFAULT_NAME
    audit: AuditSettings = field(default_factory=AuditSettings)
    push: PushSettings = field(default_factory=PushSettings)
    fleet: FleetSettings = field(default_factory=FleetSettings)
    webhook: WebhookSettings = field(default_factory=WebhookSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _validate(config: AuditbotConfig) -> None:
    if config.audit.level is not None and config.audit.level not in AUDIT_LEVELS:
        raise ValueError(
            f"Invalid audit level '{config.audit.level}', expected one of {AUDIT_LEVELS}"
        )
    for strategy in (config.push.strategy, config.push.update_strategy):
        if strategy not in PUSH_STRATEGIES:
            raise ValueError(
                f"Invalid push strategy '{strategy}', expected one of {PUSH_STRATEGIES}"
            )
    fleet = config.fleet
    for name, value, minimum in (
        ("max_repositories", fleet.max_repositories, 1),
        ("concurrency", fleet.concurrency, 1),
        ("idle_hours", fleet.idle_hours, 0),
    ):
        if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
            raise ValueError(f"fleet.{name} must be an integer of at least {minimum}, got {value!r}")


def load_config(
    repo_path: Optional[Path] = None,
    config_file: Optional[Path] = None,
) -> AuditbotConfig:
    """Load auditbot configuration.

    Priority (highest to lowest):
    1. Environment variables (AUDITBOT_PUSH, AUDITBOT_LEVEL, etc.)
    2. Config file (explicit path, else .auditbot/auditbot-config.yml)
    3. Package defaults

    Args:
        repo_path: Directory holding the default config file. Defaults to cwd.
        config_file: Explicit config file path; overrides repo_path lookup.

    Returns:
        AuditbotConfig instance

    Raises:
        ValueError: If a configured level or push strategy is unknown, or a
            fleet limit is not an integer in range.
    """
    config = AuditbotConfig()

    if config_file is None:
        if repo_path is None:
            repo_path = Path.cwd()
        config_file = repo_path / CONFIG_PATH

    if config_file.exists():
        with open(config_file) as f:
            data = yaml.safe_load(f) or {}

        config.name = data.get("name", DEFAULT_NAME)

        # Parse audit
        if "audit" in data:
            audit = data["audit"] or {}
            config.audit.level = audit.get("level")
            config.audit.ignore_dev = bool(audit.get("ignore_dev", False))
            config.audit.force = bool(audit.get("force", False))
            config.audit.excluded_packages = list(audit.get("excluded_packages") or [])
            config.audit.excluded_advisory_ids = [
                str(a) for a in audit.get("excluded_advisory_ids") or []
            ]

        # Parse push
        if "push" in data:
            push = data["push"] or {}
            config.push.strategy = push.get("strategy", DEFAULT_PUSH_STRATEGY)
            config.push.update_strategy = push.get(
                "update_strategy", DEFAULT_UPDATE_PUSH_STRATEGY
            )
            config.push.labels = list(push.get("labels") or [])

        # Parse fleet
        if "fleet" in data:
            fleet = data["fleet"] or {}
            config.fleet.owners = list(fleet.get("owners") or [])
            repos = fleet.get("repos") or {}
            config.fleet.repos.include = list(repos.get("include") or [])
            config.fleet.repos.exclude = list(repos.get("exclude") or [])
            config.fleet.max_repositories = fleet.get(
                "max_repositories", DEFAULT_MAX_REPOSITORIES
            )
            config.fleet.concurrency = fleet.get("concurrency", DEFAULT_CONCURRENCY)
            config.fleet.idle_hours = fleet.get("idle_hours", DEFAULT_IDLE_HOURS)

        if "webhook" in data:
            config.webhook.secret = (data["webhook"] or {}).get("secret")

        if "storage" in data and (data["storage"] or {}).get("home"):
            config.storage.home = Path(data["storage"]["home"]).expanduser()

    # Override with environment variables
    if env_level := os.environ.get("AUDITBOT_LEVEL"):
        config.audit.level = env_level
    if env_push := os.environ.get("AUDITBOT_PUSH"):
        config.push.strategy = env_push
    if env_update_push := os.environ.get("AUDITBOT_UPDATE_PUSH"):
        config.push.update_strategy = env_update_push
    if env_force := os.environ.get("AUDITBOT_FORCE"):
        config.audit.force = _as_bool(env_force)
    if env_ignore_dev := os.environ.get("AUDITBOT_IGNORE_DEV"):
        config.audit.ignore_dev = _as_bool(env_ignore_dev)
    if env_concurrency := os.environ.get("AUDITBOT_CONCURRENCY"):
        config.fleet.concurrency = int(env_concurrency)
    if env_max := os.environ.get("AUDITBOT_MAX_REPOSITORIES"):
        config.fleet.max_repositories = int(env_max)
    if env_secret := os.environ.get("AUDITBOT_WEBHOOK_SECRET"):
        config.webhook.secret = env_secret
    if env_home := os.environ.get("AUDITBOT_HOME"):
        config.storage.home = Path(env_home).expanduser()

    _validate(config)
    return config


def setup_langsmith() -> bool:
    """Configure LangSmith tracing if API key is available.

    Returns:
        True if LangSmith is enabled, False otherwise.
    """
    # Check if API key is set
    if not os.environ.get("LANGCHAIN_API_KEY"):
        # Disable tracing if no API key
        os.environ["LANGCHAIN_TRACING_V2"] = "false"
        return False

    # Enable tracing
    os.environ.setdefault("LANGCHAIN_TRACING_V2", "true")
    os.environ.setdefault("LANGCHAIN_PROJECT", "auditbot")
    return True
