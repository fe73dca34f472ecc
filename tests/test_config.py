"""Tests for configuration loading and merging."""

from __future__ import annotations

import tempfile

import pytest

from pg_health.config import (
    CheckConfig,
    Config,
    ExclusionsConfig,
    ExecutionConfig,
    ThresholdConfig,
    load_config,
    merge_cli_with_config,
)
from pg_health.context import PgContext
from pg_health.models import IndexWithSize, SequenceState, Table, TableWithBloat


def _load(yaml_content: str) -> Config:
    with tempfile.NamedTemporaryFile(suffix=".yaml", delete=False, mode="w") as f:
        f.write(yaml_content)
        f.flush()
        return load_config(f.name)


class TestCheckConfig:
    """Tests for CheckConfig dataclass."""

    def test_defaults(self):
        cfg = CheckConfig()
        assert cfg.exclude == set()
        assert cfg.include_only is None


class TestConfig:
    """Tests for Config dataclass."""

    def test_defaults(self):
        cfg = Config()
        assert cfg.schemas == ["public"]
        assert cfg.global_checks.exclude == set()
        assert cfg.kind_checks == {}
        assert cfg.execution.parallel is True
        assert cfg.execution.timeout is None

    def test_get_check_config_merges_exclude(self):
        cfg = Config(
            global_checks=CheckConfig(exclude={"global_check"}),
            kind_checks={"runtime": CheckConfig(exclude={"runtime_check"})},
        )
        result = cfg.get_check_config("runtime")
        assert result.exclude == {"global_check", "runtime_check"}

    def test_get_check_config_kind_include_only_overrides(self):
        cfg = Config(
            global_checks=CheckConfig(include_only={"global_a"}),
            kind_checks={"static": CheckConfig(include_only={"static_a"})},
        )
        assert cfg.get_check_config("static").include_only == {"static_a"}
        assert cfg.get_check_config("runtime").include_only == {"global_a"}

    def test_contexts_per_schema(self):
        cfg = Config(schemas=["public", "sales"], thresholds=ThresholdConfig(25.0, 5.0))
        assert cfg.contexts() == [PgContext.of("public", 25.0, 5.0), PgContext.of("sales", 25.0, 5.0)]

    def test_contexts_deduplicated(self):
        cfg = Config(schemas=["sales", "SALES", "public"])
        assert [c.schema_name for c in cfg.contexts()] == ["sales", "public"]


class TestExclusionsConfig:
    def test_nothing_excluded(self):
        assert ExclusionsConfig().to_predicate(PgContext.of_default()) is None

    def test_tables_qualified_for_context(self):
        skip = ExclusionsConfig(tables={"orders"}).to_predicate(PgContext.of("sales"))
        assert skip(Table("sales.orders"))
        assert not skip(Table("orders"))

    def test_combined(self):
        cfg = ExclusionsConfig(
            indexes={"i_orders"},
            sequences={"seq_orders"},
            index_size_threshold=100,
            bloat_percentage_threshold=20.0,
            skip_flyway=True,
        )
        skip = cfg.to_predicate(PgContext.of_default())
        assert skip(IndexWithSize("t", "i_orders", 1000))
        assert skip(IndexWithSize("t", "i_small", 10))
        assert skip(SequenceState("seq_orders", "bigint", 1.0))
        assert skip(TableWithBloat("t", 1000, 100, 5.0))
        assert skip(Table("flyway_schema_history"))
        assert not skip(Table("orders"))


class TestLoadConfig:
    """Tests for load_config function."""

    def test_returns_default_when_no_file(self):
        cfg = load_config(None, auto_discover=False)
        assert isinstance(cfg, Config)
        assert cfg.schemas == ["public"]

    def test_loads_yaml_file(self):
        cfg = _load("""
schemas:
  - public
  - sales
thresholds:
  bloat_percentage: 30
  remaining_percentage: 15
checks:
  exclude:
    - unused_indexes
  runtime:
    include_only:
      - bloated_tables
""")
        assert cfg.schemas == ["public", "sales"]
        assert cfg.thresholds.bloat_percentage == 30.0
        assert cfg.thresholds.remaining_percentage == 15.0
        assert cfg.global_checks.exclude == {"unused_indexes"}
        assert cfg.kind_checks["runtime"].include_only == {"bloated_tables"}

    def test_single_schema_string(self):
        assert _load("schemas: sales\n").schemas == ["sales"]

    def test_loads_exclusions(self):
        cfg = _load("""
exclusions:
  tables: [orders]
  table_size_threshold: 8192
  skip_liquibase: true
""")
        assert cfg.exclusions.tables == {"orders"}
        assert cfg.exclusions.table_size_threshold == 8192
        assert cfg.exclusions.skip_liquibase is True
        assert cfg.exclusions.skip_flyway is False

    def test_loads_execution(self):
        cfg = _load("""
execution:
  parallel: false
  timeout: 30
  max_workers: 4
""")
        assert cfg.execution == ExecutionConfig(parallel=False, timeout=30.0, max_workers=4)

    def test_file_not_found_raises(self):
        with pytest.raises(FileNotFoundError):
            load_config("/nonexistent/path.yaml")

    def test_empty_yaml_returns_defaults(self):
        cfg = _load("")
        assert cfg.global_checks.exclude == set()
        assert cfg.schemas == ["public"]

    def test_empty_schemas_rejected(self):
        with pytest.raises(ValueError, match="schemas"):
            _load("schemas: []\n")

    def test_threshold_out_of_range_rejected(self):
        with pytest.raises(ValueError):
            _load("thresholds:\n  bloat_percentage: 150\n")

    def test_top_level_list_rejected(self):
        with pytest.raises(ValueError, match="mapping"):
            _load("- a\n- b\n")


class TestMergeCliWithConfig:
    """Tests for merge_cli_with_config function."""

    def test_cli_exclude_adds_to_config(self):
        config = Config(global_checks=CheckConfig(exclude={"config_check"}))
        check_cfg, _, _ = merge_cli_with_config(config, "all", cli_exclude={"cli_check"})
        assert check_cfg.exclude == {"config_check", "cli_check"}

    def test_cli_include_only_overrides_config(self):
        config = Config(global_checks=CheckConfig(include_only={"config_check"}))
        check_cfg, _, _ = merge_cli_with_config(config, "all", cli_include_only={"cli_only_check"})
        assert check_cfg.include_only == {"cli_only_check"}

    def test_kind_specific_exclude_merged(self):
        config = Config(
            global_checks=CheckConfig(exclude={"global"}),
            kind_checks={"static": CheckConfig(exclude={"static_kind"})},
        )
        check_cfg, _, _ = merge_cli_with_config(config, "static", cli_exclude={"cli"})
        assert check_cfg.exclude == {"global", "static_kind", "cli"}

    def test_cli_schemas_override(self):
        config = Config(schemas=["public"])
        _, contexts, _ = merge_cli_with_config(config, "all", cli_schemas=["sales", "hr"])
        assert [c.schema_name for c in contexts] == ["sales", "hr"]

    def test_cli_thresholds_override(self):
        config = Config(thresholds=ThresholdConfig(bloat_percentage=30.0, remaining_percentage=15.0))
        _, contexts, _ = merge_cli_with_config(config, "all", cli_bloat_threshold=50.0)
        assert contexts[0].bloat_percentage_threshold == 50.0
        assert contexts[0].remaining_percentage_threshold == 15.0

    def test_cli_execution_override(self):
        config = Config(execution=ExecutionConfig(parallel=True, timeout=60.0, max_workers=2))
        _, _, exec_cfg = merge_cli_with_config(config, "all", cli_timeout=5.0, cli_no_parallel=True)
        assert exec_cfg == ExecutionConfig(parallel=False, timeout=5.0, max_workers=2)

    def test_config_timeout_kept(self):
        config = Config(execution=ExecutionConfig(timeout=60.0))
        _, _, exec_cfg = merge_cli_with_config(config, "all")
        assert exec_cfg.timeout == 60.0
