"""
Tenant Configuration Manager
============================

Loads quotas, persona rules and alert thresholds from a YAML file,
validates them into pydantic models and keeps them fresh:

- a watchdog observer reloads the file when it changes
- reads older than ``config_max_staleness_seconds`` re-read the file, so
  staleness stays bounded even where file events are unavailable
- ``pinned`` fixes one snapshot for the current task, so a pipeline run
  never mixes two configuration versions

Example file::

    quotas:
      - {id: q-daily, tenant_id: acme, form_id: nps, limit_value: 500, period_type: day}
    persona_rules:
      preset: gcc
      tenants:
        acme:
          - {id: 1, persona_id: VIP, score: 90, conditions: ["income >= 50000"]}
    alert_thresholds:
      default: {negative_score_threshold: -0.5}
      overrides:
        - tenant_id: acme
          form_id: nps
          thresholds: {trigger_emotions: [angry]}
"""

import asyncio
import threading
import time
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from feedback_core.admission.domain import Quota
from feedback_core.alerting.domain import AlertThresholds
from feedback_core.classification.domain import PersonaRule, get_preset
from feedback_core.config import settings
from feedback_core.core import ConfigurationError
from feedback_core.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


# ========== Configuration Models ==========

class PersonaRuleSection(BaseModel):
    """Per-tenant persona rules plus the preset used for everyone else."""
    preset: Optional[str] = Field(default="gcc", description="Rule preset for tenants without rules")
    tenants: Dict[str, List[PersonaRule]] = Field(default_factory=dict)

    @field_validator("preset")
    @classmethod
    def validate_preset(cls, v: Optional[str]) -> Optional[str]:
        """Ensure the preset exists."""
        if v is not None:
            try:
                get_preset(v)
            except KeyError as e:
                raise ValueError(str(e)) from e
        return v

    @field_validator("tenants", mode="before")
    @classmethod
    def coerce_tenant_ids(cls, v):
        """Accept integer tenant ids from YAML."""
        if isinstance(v, dict):
            return {str(k): rules for k, rules in v.items()}
        return v


class ThresholdOverride(BaseModel):
    """Thresholds for one tenant, or one form of a tenant."""
    tenant_id: str
    form_id: Optional[str] = None
    thresholds: AlertThresholds

    @field_validator("tenant_id", "form_id", mode="before")
    @classmethod
    def coerce_identifier(cls, v):
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class ThresholdSection(BaseModel):
    """Default thresholds and their overrides."""
    default: AlertThresholds = Field(default_factory=AlertThresholds)
    overrides: List[ThresholdOverride] = Field(default_factory=list)


class FeedbackConfig(BaseModel):
    """Complete tenant configuration read by the pipeline."""
    quotas: List[Quota] = Field(default_factory=list)
    persona_rules: PersonaRuleSection = Field(default_factory=PersonaRuleSection)
    alert_thresholds: ThresholdSection = Field(default_factory=ThresholdSection)

    def quotas_for(self, tenant_id: str, form_id: str) -> List[Quota]:
        """All quotas configured for a form (active or not)."""
        return [
            q for q in self.quotas
            if q.tenant_id == tenant_id and q.form_id == form_id
        ]

    def rules_for(self, tenant_id: str) -> List[PersonaRule]:
        """Tenant rules, else the preset, else nothing (everyone is GENERAL)."""
        if tenant_id in self.persona_rules.tenants:
            return list(self.persona_rules.tenants[tenant_id])
        if self.persona_rules.preset:
            return get_preset(self.persona_rules.preset)
        return []

    def thresholds_for(self, tenant_id: str, form_id: str) -> AlertThresholds:
        """Form override, then tenant override, then the default."""
        tenant_match = None
        for override in self.alert_thresholds.overrides:
            if override.tenant_id != tenant_id:
                continue
            if override.form_id == form_id:
                return override.thresholds
            if override.form_id is None and tenant_match is None:
                tenant_match = override.thresholds
        return tenant_match or self.alert_thresholds.default


# ========== File Watching ==========

class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for configuration file changes."""

    def __init__(self, config_manager: "YAMLConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def on_modified(self, event):
        """Handle file modification event."""
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.config_path.resolve():
            logger.info("Config file changed", extra={"path": str(event.src_path)})
            self.config_manager.reload()

    def on_created(self, event):
        """Editors that save by rename show up as creations."""
        self.on_modified(event)


_snapshot: ContextVar[Optional[Tuple["YAMLConfigManager", "FeedbackConfig"]]] = ContextVar(
    "feedback_config_snapshot", default=None
)


class YAMLConfigManager:
    """
    Thread-safe tenant configuration manager with hot-reload support.

    Uses watchdog to monitor file changes and reload configuration
    without restarting the host. A failed hot reload keeps the previous
    configuration; a failed reload past the staleness bound raises.
    """

    def __init__(self, max_staleness_seconds: Optional[float] = None):
        self._config: Optional[FeedbackConfig] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None
        self._loaded_at = 0.0
        self._max_staleness = (
            settings.config_max_staleness_seconds
            if max_staleness_seconds is None else max_staleness_seconds
        )

    def load(self, path: Optional[Path] = None) -> FeedbackConfig:
        """
        Initial configuration load.

        Raises:
            ConfigurationError: The file exists but is not valid
        """
        self._path = Path(path or settings.feedback_config_path)
        config = self._load_from_file(self._path, missing_ok=True)
        self._store(config)
        return config

    def load_from_dict(self, data: dict) -> FeedbackConfig:
        """Load configuration held in memory (no file, never stale)."""
        config = self._parse(data, source="<dict>")
        self._path = None
        self._store(config)
        return config

    def _store(self, config: FeedbackConfig) -> None:
        with self._lock:
            self._config = config
            self._loaded_at = time.monotonic()

    @staticmethod
    def _parse(data: dict, source: str) -> FeedbackConfig:
        try:
            return FeedbackConfig(**(data or {}))
        except (ValidationError, TypeError) as e:
            raise ConfigurationError(
                f"Invalid feedback configuration in {source}: {e}",
                {"path": source}
            ) from e

    def _load_from_file(self, path: Path, missing_ok: bool = False) -> FeedbackConfig:
        """
        Load and parse YAML config file.

        A missing file yields defaults only on the first load; once a
        configuration is in use, losing its file is an error.
        """
        if not path.exists():
            if not missing_ok:
                raise ConfigurationError(
                    "Feedback configuration file disappeared",
                    {"path": str(path)}
                )
            logger.warning(
                "Feedback config file not found, using defaults",
                extra={"path": str(path)}
            )
            return FeedbackConfig()

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(
                f"Cannot read feedback configuration {path}: {e}",
                {"path": str(path)}
            ) from e

        if not isinstance(data, dict):
            raise ConfigurationError(
                "Feedback configuration must be a mapping",
                {"path": str(path)}
            )
        return self._parse(data, source=str(path))

    def reload(self) -> bool:
        """Reload configuration from file; keeps the previous one on failure."""
        if self._path is None:
            return False

        try:
            self._store(self._load_from_file(self._path))
            logger.info("Feedback configuration reloaded successfully")
            return True
        except ConfigurationError as e:
            logger.error("Failed to reload feedback config", extra={"error": e.message})
            return False

    def start_watching(self) -> None:
        """
        Start watching the configuration file for changes.

        Skips watching when the file does not exist or the platform offers
        no file events; the staleness bound still applies.
        """
        if self._path is None:
            raise RuntimeError("Config not loaded from a file. Call load() first.")

        if not self._path.exists():
            logger.info(
                "Config file doesn't exist, skipping file watch",
                extra={"path": str(self._path)}
            )
            return

        try:
            self._observer = Observer()
            handler = ConfigFileHandler(self, self._path)
            self._observer.schedule(
                handler,
                str(self._path.parent),
                recursive=False
            )
            self._observer.start()
            logger.info("Started watching config file", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning(
                "File watching not available, relying on staleness reloads",
                extra={"error": str(e)}
            )
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching configuration file (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def is_stale(self) -> bool:
        """True when the cached configuration is older than the staleness bound."""
        if self._path is None:
            return False
        return time.monotonic() - self._loaded_at > self._max_staleness

    @property
    def config(self) -> FeedbackConfig:
        """
        Current configuration, re-read from disk once it is too old.

        Raises:
            ConfigurationError: Not loaded, or stale and the file is now invalid
        """
        snapshot = _snapshot.get()
        if snapshot is not None and snapshot[0] is self:
            return snapshot[1]

        if self._config is None:
            raise ConfigurationError("Feedback configuration not loaded")

        if self.is_stale:
            self._store(self._load_from_file(self._path))

        with self._lock:
            return self._config

    async def current(self) -> FeedbackConfig:
        """
        Like ``config`` but performs a stale re-read in a worker thread.

        Raises:
            ConfigurationError: Not loaded, or stale and the file is now invalid
        """
        if self._config is not None and self.is_stale:
            await asyncio.to_thread(lambda: self._store(self._load_from_file(self._path)))
        return self.config

    @contextmanager
    def pinned(self, config: FeedbackConfig) -> Iterator[FeedbackConfig]:
        """Serve ``config`` to every read in the current context until exit."""
        token = _snapshot.set((self, config))
        try:
            yield config
        finally:
            _snapshot.reset(token)
