"""Tests for YAML configuration loading and the config -> kernel bridge."""

from __future__ import annotations

import pytest
import yaml

from custody_config import get_active_config, load_config
from custody_config.bridges import build_orchestrator, to_policy
from custody_config.loader import ENV_CONFIG_PATH, ENV_DATABASE_URL, compute_checksum
from custody_kernel.db.engine import reset_engine
from custody_kernel.domain.clock import DeterministicClock
from custody_kernel.domain.identifiers import ScriptedCodeSource, SequentialIdGenerator
from custody_kernel.domain.lifecycle import Decision, UserRole
from custody_kernel.domain.policy import CustodyPolicy
from tests.conftest import RETURN_DATE, START_TIME


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv(ENV_CONFIG_PATH, raising=False)
    monkeypatch.delenv(ENV_DATABASE_URL, raising=False)


@pytest.fixture
def write_config(tmp_path):
    def _write(data, name="custody.yaml"):
        path = tmp_path / name
        path.write_text(yaml.safe_dump(data) if not isinstance(data, str) else data)
        return path

    return _write


class TestDefaults:

    def test_package_defaults(self):
        config = load_config()
        assert config.database.url == "sqlite:///custody.db"
        assert config.gate_pass.prefix == "GP-"
        assert config.gate_pass.digits == 4
        assert config.policy.lock_timeout_seconds == 10.0
        assert config.policy.verify_ledger_on_write is True
        assert config.logging.level == "INFO"
        assert config.source_path is None

    def test_defaults_match_kernel_policy_defaults(self):
        assert to_policy(load_config()) == CustodyPolicy()


class TestOverlay:

    def test_user_file_overrides_single_keys(self, write_config):
        path = write_config({"gate_pass": {"digits": 6}, "policy": {"require_return_evidence": True}})
        config = load_config(path)

        assert config.gate_pass.digits == 6
        assert config.gate_pass.prefix == "GP-"
        assert config.policy.require_return_evidence is True
        assert config.source_path == str(path)

    def test_path_from_environment(self, write_config, monkeypatch):
        path = write_config({"gate_pass": {"prefix": "EXIT-"}})
        monkeypatch.setenv(ENV_CONFIG_PATH, str(path))
        assert load_config().gate_pass.prefix == "EXIT-"

    def test_database_url_from_environment_wins(self, write_config, monkeypatch):
        path = write_config({"database": {"url": "sqlite:///from-file.db"}})
        monkeypatch.setenv(ENV_DATABASE_URL, "postgresql://custody@db/custody")
        assert load_config(path).database.url == "postgresql://custody@db/custody"

    def test_int_widened_to_float(self, write_config):
        config = load_config(write_config({"policy": {"lock_timeout_seconds": 3}}))
        assert config.policy.lock_timeout_seconds == 3.0
        assert isinstance(config.policy.lock_timeout_seconds, float)

    def test_empty_section_is_ignored(self, write_config):
        assert load_config(write_config("gate_pass:\n")).gate_pass.digits == 4


class TestRejection:

    def test_unknown_section(self, write_config):
        with pytest.raises(ValueError, match="unknown section 'gatepass'"):
            load_config(write_config({"gatepass": {"digits": 4}}))

    def test_unknown_key(self, write_config):
        with pytest.raises(ValueError, match="gate_pass.width"):
            load_config(write_config({"gate_pass": {"width": 4}}))

    @pytest.mark.parametrize("section,key,value", [
        ("gate_pass", "digits", "four"),
        ("gate_pass", "digits", True),
        ("policy", "lock_timeout_seconds", "10"),
        ("policy", "require_checkout_evidence", "yes"),
        ("database", "url", 5),
    ])
    def test_wrong_type(self, write_config, section, key, value):
        with pytest.raises(ValueError):
            load_config(write_config({section: {key: value}}))

    def test_top_level_must_be_mapping(self, write_config):
        with pytest.raises(ValueError, match="mapping"):
            load_config(write_config("- just\n- a list\n"))

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.yaml")

    def test_out_of_range_policy_fails_at_load(self, write_config):
        with pytest.raises(ValueError, match="gate_pass_digits"):
            get_active_config(write_config({"gate_pass": {"digits": 0}}))


class TestChecksumAndTrace:

    def test_checksum_is_stable(self, write_config):
        path = write_config({"gate_pass": {"digits": 5}})
        assert load_config(path).checksum == load_config(path).checksum
        assert load_config(path).checksum != load_config().checksum

    def test_checksum_ignores_key_order(self):
        assert compute_checksum({"a": {"x": 1, "y": 2}}) == compute_checksum({"a": {"y": 2, "x": 1}})

    def test_trace_is_logged(self, captured_logs):
        config = get_active_config()
        traces = [r for r in captured_logs() if r["message"] == "CUSTODY_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["checksum"] == config.checksum
        assert traces[0]["database_dialect"] == "sqlite"


class TestBuildOrchestrator:

    @pytest.fixture
    def built(self, tmp_path, write_config):
        path = write_config({
            "database": {"url": f"sqlite:///{tmp_path / 'built.db'}"},
            "gate_pass": {"prefix": "EXIT-", "digits": 3},
        })
        orchestrator = build_orchestrator(
            get_active_config(path),
            clock=DeterministicClock(START_TIME),
            ids=SequentialIdGenerator(),
            code_source=ScriptedCodeSource([512]),
        )
        yield orchestrator
        reset_engine()

    def test_policy_flows_into_minted_codes(self, built):
        admin = built.create_user("Ada", "ada@example.com", UserRole.ADMIN)
        user = built.create_user("Una", "una@example.com")
        asset = built.add_asset("Theodolite", "TH-1", "Survey")

        view = built.submit_request(user.id, [asset.id], "Boundary survey", RETURN_DATE)
        approved = built.decide(view.id, admin.id, Decision.APPROVE)

        assert approved.request.gate_pass_code == "EXIT-512"
        assert built.policy.gate_pass_digits == 3
