"""Tests for feedback_core/shared/infrastructure/config_manager.py

Covers:
- FeedbackConfig: quota, rule and threshold lookup with overrides
- YAMLConfigManager: file load, missing file defaults, invalid files
- YAMLConfigManager: hot reload keeps the last good config, staleness reload
- YAMLConfigManager: losing the file after load, async refresh, pinned snapshots
- YAML-backed providers
"""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from feedback_core.admission.infrastructure import YAMLQuotaProvider
from feedback_core.alerting.infrastructure import YAMLThresholdProvider
from feedback_core.classification.infrastructure import YAMLPersonaRuleProvider
from feedback_core.core import ConfigurationError
from feedback_core.shared.infrastructure.config_manager import FeedbackConfig, YAMLConfigManager

CONFIG = textwrap.dedent(
    """
    quotas:
      - {id: q-daily, tenant_id: acme, form_id: nps, limit_value: 500, period_type: day, label: Daily}
      - {id: q-off, tenant_id: acme, form_id: nps, limit_value: 1, is_active: false}
      - {id: 7, tenant_id: acme, form_id: csat, limit_value: 10}
    persona_rules:
      preset: gcc
      tenants:
        acme:
          - id: 1
            persona_id: VIP
            score: 90
            conditions: ["income >= 50000"]
    alert_thresholds:
      default:
        negative_score_threshold: -0.5
      overrides:
        - tenant_id: acme
          thresholds: {negative_score_threshold: -0.4}
        - tenant_id: acme
          form_id: nps
          thresholds: {negative_score_threshold: -0.2, trigger_emotions: [angry]}
    """
)


def _write(path: Path, content: str) -> Path:
    path.write_text(content, encoding="utf-8")
    return path


@pytest.fixture()
def config_file(tmp_path: Path) -> Path:
    return _write(tmp_path / "feedback_config.yaml", CONFIG)


class TestFeedbackConfig:
    """Verify configuration lookups."""

    def test_lookups(self, config_file: Path) -> None:
        config = YAMLConfigManager().load(config_file)

        assert [q.id for q in config.quotas_for("acme", "nps")] == ["q-daily", "q-off"]
        assert [q.id for q in config.quotas_for("acme", "csat")] == ["7"]
        assert config.quotas_for("other", "nps") == []

    def test_rules_fall_back_to_preset(self, config_file: Path) -> None:
        config = YAMLConfigManager().load(config_file)

        assert [r.persona_id for r in config.rules_for("acme")] == ["VIP"]
        assert len(config.rules_for("globex")) == 7

    def test_no_preset_means_no_rules(self) -> None:
        config = FeedbackConfig(persona_rules={"preset": None})

        assert config.rules_for("anyone") == []

    def test_unknown_preset_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            YAMLConfigManager().load_from_dict({"persona_rules": {"preset": "nordics"}})

    def test_threshold_override_precedence(self, config_file: Path) -> None:
        config = YAMLConfigManager().load(config_file)

        assert config.thresholds_for("acme", "nps").negative_score_threshold == -0.2
        assert config.thresholds_for("acme", "nps").trigger_emotions == ["angry"]
        assert config.thresholds_for("acme", "csat").negative_score_threshold == -0.4
        assert config.thresholds_for("globex", "nps").negative_score_threshold == -0.5


class TestYAMLConfigManager:
    """Verify loading and reloading."""

    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        config = YAMLConfigManager().load(tmp_path / "absent.yaml")

        assert config.quotas == []
        assert config.persona_rules.preset == "gcc"

    def test_invalid_file_raises(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "bad.yaml", "quotas:\n  - {id: q, limit_value: -1}\n")

        with pytest.raises(ConfigurationError):
            YAMLConfigManager().load(path)

    def test_non_mapping_file_raises(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "list.yaml", "- just\n- a list\n")

        with pytest.raises(ConfigurationError):
            YAMLConfigManager().load(path)

    def test_config_before_load_raises(self) -> None:
        with pytest.raises(ConfigurationError):
            YAMLConfigManager().config

    def test_failed_reload_keeps_previous_config(self, config_file: Path) -> None:
        manager = YAMLConfigManager(max_staleness_seconds=3600)
        manager.load(config_file)

        _write(config_file, "quotas: [{id: broken}]\n")

        assert manager.reload() is False
        assert len(manager.config.quotas) == 3

    def test_successful_reload(self, config_file: Path) -> None:
        manager = YAMLConfigManager(max_staleness_seconds=3600)
        manager.load(config_file)

        _write(config_file, "quotas: []\n")

        assert manager.reload() is True
        assert manager.config.quotas == []

    def test_stale_config_reread_on_access(self, config_file: Path) -> None:
        manager = YAMLConfigManager(max_staleness_seconds=0)
        manager.load(config_file)

        _write(config_file, "quotas: []\n")

        assert manager.config.quotas == []

    def test_stale_invalid_config_raises(self, config_file: Path) -> None:
        manager = YAMLConfigManager(max_staleness_seconds=0)
        manager.load(config_file)

        _write(config_file, "quotas: [{id: broken}]\n")

        with pytest.raises(ConfigurationError):
            manager.config

    def test_deleted_file_keeps_quotas_on_reload(self, config_file: Path) -> None:
        manager = YAMLConfigManager(max_staleness_seconds=3600)
        manager.load(config_file)

        config_file.unlink()

        assert manager.reload() is False
        assert [q.id for q in manager.config.quotas_for("acme", "nps")] == ["q-daily", "q-off"]

    def test_deleted_file_on_stale_read_raises(self, config_file: Path) -> None:
        manager = YAMLConfigManager(max_staleness_seconds=0)
        manager.load(config_file)

        config_file.unlink()

        with pytest.raises(ConfigurationError):
            manager.config

    @pytest.mark.asyncio
    async def test_current_rereads_stale_config(self, config_file: Path) -> None:
        manager = YAMLConfigManager(max_staleness_seconds=0)
        manager.load(config_file)

        _write(config_file, "quotas: []\n")

        assert (await manager.current()).quotas == []

    def test_pinned_snapshot_survives_reload(self, config_file: Path) -> None:
        manager = YAMLConfigManager(max_staleness_seconds=3600)
        manager.load(config_file)

        with manager.pinned(manager.config):
            _write(config_file, "quotas: []\n")
            assert manager.reload() is True
            assert len(manager.config.quotas) == 3

        assert manager.config.quotas == []

    def test_dict_config_never_stale(self) -> None:
        manager = YAMLConfigManager(max_staleness_seconds=0)
        manager.load_from_dict({"quotas": [{"id": "q", "tenant_id": "t", "form_id": "f", "limit_value": 1}]})

        assert manager.is_stale is False
        assert manager.reload() is False
        assert len(manager.config.quotas) == 1

    def test_watching_lifecycle(self, config_file: Path) -> None:
        manager = YAMLConfigManager()
        manager.load(config_file)

        manager.start_watching()
        manager.stop_watching()
        manager.stop_watching()

    def test_watch_requires_file_load(self) -> None:
        manager = YAMLConfigManager()
        manager.load_from_dict({})

        with pytest.raises(RuntimeError):
            manager.start_watching()


class TestYAMLProviders:
    """Verify providers read through the manager."""

    @pytest.mark.asyncio
    async def test_providers(self, config_file: Path) -> None:
        manager = YAMLConfigManager()
        manager.load(config_file)

        quotas = await YAMLQuotaProvider(manager).get_quotas("acme", "nps")
        rules = await YAMLPersonaRuleProvider(manager).get_rules("acme")
        thresholds = await YAMLThresholdProvider(manager).get_thresholds("acme", "nps")

        assert quotas[0].label == "Daily"
        assert rules[0].conditions[0].field == "income"
        assert thresholds.trigger_emotions == ["angry"]
