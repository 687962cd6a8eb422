"""
Tests for stock_config: default loading, override merging, environment
overrides, parse failures, and the bridges into kernel value types.
"""

from decimal import Decimal

import pytest
import yaml

from stock_config import get_active_config
from stock_config.bridges import (
    build_document_prefixes,
    build_ledger_defaults,
    build_rejection_policy,
    build_request_policy,
)
from stock_config.loader import deep_merge, parse_config
from stock_kernel.domain.dtos import ResourceKind
from stock_kernel.domain.tasks import RejectionPolicy


def _write(tmp_path, data, name="override.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaults:
    def test_packaged_defaults(self):
        config = get_active_config(environ={})

        assert config.database.url == "sqlite:///stock_ledger.db"
        assert config.ledger_defaults["DEVICE"].minimum_stock_level == 5
        assert config.ledger_defaults["SPARE_PART"].maximum_stock_level == 500
        assert config.numbering.export_request_prefix == "SPER"
        assert config.task_policy.rejection_policy == "terminal"
        assert not config.spare_parts_service.enabled
        assert config.logging.level == "INFO"

    def test_checksum_is_stable(self):
        assert get_active_config(environ={}).checksum == get_active_config(environ={}).checksum

    def test_load_is_logged(self, captured_logs):
        get_active_config(environ={})
        record = next(r for r in captured_logs() if r["message"] == "stock_config_loaded")
        assert record["rejection_policy"] == "terminal"


class TestOverrides:
    def test_override_file_is_deep_merged(self, tmp_path):
        path = _write(tmp_path, {
            "ledger_defaults": {"DEVICE": {"minimum_stock_level": 2, "maximum_stock_level": 40}},
            "task_policy": {"rejection_policy": "REQUEUE"},
        })
        config = get_active_config(path, environ={})

        assert config.ledger_defaults["DEVICE"].minimum_stock_level == 2
        assert config.ledger_defaults["SPARE_PART"].minimum_stock_level == 10
        assert config.task_policy.rejection_policy == "requeue"
        assert config.checksum != get_active_config(environ={}).checksum

    def test_override_path_from_environment(self, tmp_path):
        path = _write(tmp_path, {"logging": {"level": "debug"}})
        config = get_active_config(environ={"STOCK_LEDGER_CONFIG": str(path)})
        assert config.logging.level == "DEBUG"

    def test_database_url_from_environment(self, tmp_path):
        path = _write(tmp_path, {"database": {"url": "sqlite:///from-file.db"}})
        config = get_active_config(
            path, environ={"STOCK_LEDGER_DATABASE_URL": "sqlite:///from-env.db"}
        )
        assert config.database.url == "sqlite:///from-env.db"

    def test_missing_override_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml", environ={})

    def test_non_mapping_override(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- one\n- two\n")
        with pytest.raises(ValueError):
            get_active_config(path, environ={})

    def test_service_base_url_trailing_slash_dropped(self, tmp_path):
        path = _write(tmp_path, {
            "spare_parts_service": {"enabled": True, "base_url": "http://parts:9000/"},
        })
        config = get_active_config(path, environ={})
        assert config.spare_parts_service.base_url == "http://parts:9000"


class TestParseErrors:
    @pytest.fixture
    def minimal(self):
        return {"database": {"url": "sqlite://"}}

    def test_database_section_required(self):
        with pytest.raises(KeyError):
            parse_config({})

    def test_unknown_resource_kind(self, minimal):
        data = deep_merge(minimal, {"ledger_defaults": {
            "VEHICLE": {"minimum_stock_level": 1, "maximum_stock_level": 2},
        }})
        with pytest.raises(ValueError, match="unknown resource kind"):
            parse_config(data)

    def test_minimum_above_maximum(self, minimal):
        data = deep_merge(minimal, {"ledger_defaults": {
            "DEVICE": {"minimum_stock_level": 50, "maximum_stock_level": 10},
        }})
        with pytest.raises(ValueError, match="exceeds"):
            parse_config(data)

    def test_negative_threshold(self, minimal):
        data = deep_merge(minimal, {"ledger_defaults": {
            "DEVICE": {"minimum_stock_level": -1, "maximum_stock_level": 10},
        }})
        with pytest.raises(ValueError):
            parse_config(data)

    def test_unknown_rejection_policy(self, minimal):
        data = deep_merge(minimal, {"task_policy": {"rejection_policy": "escalate"}})
        with pytest.raises(ValueError, match="rejection_policy"):
            parse_config(data)

    def test_bad_total_amount(self, minimal):
        data = deep_merge(minimal, {"request_policy": {"max_total_amount": "lots"}})
        with pytest.raises(ValueError, match="max_total_amount"):
            parse_config(data)

    def test_bad_sequence_width(self, minimal):
        data = deep_merge(minimal, {"numbering": {"sequence_width": 0}})
        with pytest.raises(ValueError):
            parse_config(data)

    def test_non_positive_timeout(self, minimal):
        data = deep_merge(minimal, {"spare_parts_service": {"timeout_seconds": 0}})
        with pytest.raises(ValueError):
            parse_config(data)


def test_deep_merge_does_not_mutate_base():
    base = {"a": {"b": 1, "c": 2}}
    merged = deep_merge(base, {"a": {"b": 5}})
    assert merged == {"a": {"b": 5, "c": 2}}
    assert base == {"a": {"b": 1, "c": 2}}


class TestBridges:
    def test_kernel_values(self, tmp_path):
        path = _write(tmp_path, {
            "numbering": {"task_prefix": "JOB", "sequence_width": 4},
            "request_policy": {"max_total_amount": "5000.00"},
            "task_policy": {"rejection_policy": "requeue"},
        })
        config = get_active_config(path, environ={})

        defaults = build_ledger_defaults(config)
        assert defaults[ResourceKind.DEVICE].minimum_stock_level == 5
        assert defaults[ResourceKind.SPARE_PART].reorder_point is None

        prefixes = build_document_prefixes(config)
        assert prefixes.task == "JOB"
        assert prefixes.sequence_width == 4

        assert build_request_policy(config).max_total_amount == Decimal("5000.00")
        assert build_rejection_policy(config) is RejectionPolicy.REQUEUE
