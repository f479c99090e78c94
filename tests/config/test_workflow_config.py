"""
Workflow configuration loading.

Verifies:
- The bundled default loads and disables both integrations
- YAML files, GRADING_CONFIG and environment overrides are honoured
- Invalid documents raise ConfigurationError naming the problem
- Bridges build the kernel policy and the optional adapters
- A policy that anchors statuses is refused without a ledger writer
"""

from decimal import Decimal
from pathlib import Path

import pytest

from grading_config import (
    DEFAULT_CONFIG_PATH,
    build_image_host,
    build_ledger_event_source,
    build_workflow_policy,
    get_active_config,
)
from grading_config.loader import compute_checksum, parse_config
from grading_kernel.domain.catalog import GradingStatus
from grading_kernel.domain.history import LedgerEventKind
from grading_kernel.exceptions import ConfigurationError
from grading_kernel.integrations.image_host import CloudinaryImageHost
from grading_kernel.integrations.ledger_rpc import JsonRpcLedgerEventSource
from grading_kernel.services.workflow_engine import GradingWorkflowService

SUBMITTED_TOPIC = "0x" + "ab" * 32
APPROVED_TOPIC = "0x" + "cd" * 32

ENABLED_YAML = f"""
config_id: staging
version: 3
grade_scale:
  minimum: 1
  maximum: 10
  step: 1
ledger:
  enabled: true
  rpc_url: http://ledger.test:8545
  contract_address: "0x00000000000000000000000000000000000000aa"
  anchored_statuses: [Completed, Encapsulation/Slabbing]
  event_topics:
    submitted: "{SUBMITTED_TOPIC}"
    approved: "{APPROVED_TOPIC}"
image_host:
  enabled: true
  cloud_name: pikafi
  api_key: "1234"
  api_secret: from-file
  folder: proofs
database:
  url: sqlite:///staging.db
"""


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch):
    for variable in ("GRADING_CONFIG", "DATABASE_URL", "CLOUDINARY_API_SECRET"):
        monkeypatch.delenv(variable, raising=False)


def write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "grading.yaml"
    path.write_text(text)
    return path


class TestDefaultConfig:
    def test_loads_bundled_file(self):
        config = get_active_config()
        assert config.source == str(DEFAULT_CONFIG_PATH)
        assert config.config_id == "default"
        assert not config.ledger.enabled
        assert not config.image_host.enabled
        assert config.grade_scale.step == Decimal("0.5")
        assert config.ledger.anchored_statuses == ()

    def test_trace_is_logged(self, captured_logs):
        config = get_active_config()
        traces = [r for r in captured_logs() if r["message"] == "GRADING_CONFIG_TRACE"]
        assert traces[-1]["checksum"] == config.checksum
        assert traces[-1]["logger"] == "grading_kernel.config"

    def test_checksum_is_stable(self):
        assert get_active_config().checksum == get_active_config().checksum


class TestFileSelection:
    def test_explicit_path(self, tmp_path):
        config = get_active_config(write(tmp_path, ENABLED_YAML))
        assert config.config_id == "staging"
        assert config.version == 3
        assert config.ledger.event_topics == {
            LedgerEventKind.SUBMITTED: SUBMITTED_TOPIC,
            LedgerEventKind.APPROVED: APPROVED_TOPIC,
        }
        assert config.ledger.anchored_statuses == (GradingStatus.COMPLETED, GradingStatus.SLABBING)

    def test_grading_config_variable(self, tmp_path):
        path = write(tmp_path, ENABLED_YAML)
        config = get_active_config(environ={"GRADING_CONFIG": str(path)})
        assert config.config_id == "staging"

    def test_environment_overrides(self, tmp_path):
        path = write(tmp_path, ENABLED_YAML)
        config = get_active_config(
            path,
            environ={"DATABASE_URL": "sqlite:///override.db", "CLOUDINARY_API_SECRET": "from-env"},
        )
        assert config.database.url == "sqlite:///override.db"
        assert config.image_host.api_secret == "from-env"

    def test_override_into_empty_section(self, tmp_path):
        path = write(tmp_path, "config_id: bare\ndatabase:\n")
        config = get_active_config(path, environ={"DATABASE_URL": "sqlite:///x.db"})
        assert config.database.url == "sqlite:///x.db"

    def test_different_documents_differ(self, tmp_path):
        assert get_active_config(write(tmp_path, ENABLED_YAML)).checksum != get_active_config().checksum


class TestInvalidConfig:
    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            get_active_config(tmp_path / "absent.yaml")
        assert exc_info.value.reason == "file not found"

    def test_malformed_yaml(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            get_active_config(write(tmp_path, "ledger: [unclosed\n"))
        assert "invalid YAML" in exc_info.value.reason

    def test_top_level_list(self, tmp_path):
        with pytest.raises(ConfigurationError):
            get_active_config(write(tmp_path, "- a\n- b\n"))

    def test_unknown_anchored_status(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_config({"ledger": {"anchored_statuses": ["Polishing"]}})
        assert "Polishing" in exc_info.value.reason

    def test_enabled_ledger_needs_topics(self):
        data = {
            "ledger": {
                "enabled": True,
                "rpc_url": "http://ledger.test",
                "contract_address": "0xaa",
                "event_topics": {"submitted": SUBMITTED_TOPIC},
            }
        }
        with pytest.raises(ConfigurationError) as exc_info:
            parse_config(data)
        assert "approved" in exc_info.value.reason

    def test_enabled_image_host_needs_credentials(self):
        with pytest.raises(ConfigurationError):
            parse_config({"image_host": {"enabled": True, "cloud_name": "pikafi"}})

    @pytest.mark.parametrize(
        "scale",
        [
            {"minimum": 10, "maximum": 1},
            {"step": 0},
            {"maximum": "ten"},
        ],
    )
    def test_bad_grade_scale(self, scale):
        with pytest.raises(ConfigurationError):
            parse_config({"grade_scale": scale})

    def test_section_must_be_mapping(self):
        with pytest.raises(ConfigurationError):
            parse_config({"ledger": ["enabled"]})


class TestChecksum:
    def test_key_order_does_not_matter(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})

    def test_value_change_changes_checksum(self):
        assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})


class TestBridges:
    def test_policy_from_config(self, tmp_path):
        policy = build_workflow_policy(get_active_config(write(tmp_path, ENABLED_YAML)))
        assert policy.grade_scale.step == Decimal("1")
        assert policy.is_anchored(GradingStatus.COMPLETED)
        assert policy.is_anchored(GradingStatus.SLABBING)
        assert not policy.is_anchored(GradingStatus.SUBMITTED)

    def test_adapters_disabled_by_default(self):
        config = get_active_config()
        assert build_ledger_event_source(config) is None
        assert build_image_host(config) is None

    def test_adapters_built_when_enabled(self, tmp_path):
        config = get_active_config(write(tmp_path, ENABLED_YAML))
        source = build_ledger_event_source(config)
        host = build_image_host(config)
        try:
            assert isinstance(source, JsonRpcLedgerEventSource)
            assert isinstance(host, CloudinaryImageHost)
        finally:
            source.close()
            host.close()

    def test_default_policy_needs_no_ledger_writer(self, session):
        service = GradingWorkflowService(session, policy=build_workflow_policy(get_active_config()))
        assert service.policy.anchored_statuses == frozenset()

    def test_anchored_policy_without_writer_is_refused(self, session, tmp_path):
        policy = build_workflow_policy(get_active_config(write(tmp_path, ENABLED_YAML)))
        with pytest.raises(ConfigurationError) as exc_info:
            GradingWorkflowService(session, policy=policy)
        assert exc_info.value.source == "ledger.anchored_statuses"
        assert "'Completed'" in exc_info.value.reason
        assert "'Slabbing'" in exc_info.value.reason
