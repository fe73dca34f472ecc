"""Configuration loading and management for pg-health."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from pg_health.context import (
    DEFAULT_BLOAT_PERCENTAGE_THRESHOLD,
    DEFAULT_REMAINING_PERCENTAGE_THRESHOLD,
    DEFAULT_SCHEMA_NAME,
    PgContext,
)
from pg_health.predicates import (
    ExclusionPredicate,
    any_of,
    skip_bloat_under_threshold,
    skip_by_sequence_name,
    skip_flyway_tables,
    skip_indexes_by_name,
    skip_liquibase_tables,
    skip_small_indexes,
    skip_small_tables,
    skip_tables_by_name,
)

CONFIG_FILE_NAME = "pg-health.yaml"
KINDS = ("static", "runtime")


@dataclass
class CheckConfig:
    """Configuration for which diagnostics to include/exclude."""

    exclude: set[str] = field(default_factory=set)
    include_only: set[str] | None = None  # None = no whitelist, run all minus exclude


@dataclass
class ThresholdConfig:
    bloat_percentage: float = DEFAULT_BLOAT_PERCENTAGE_THRESHOLD
    remaining_percentage: float = DEFAULT_REMAINING_PERCENTAGE_THRESHOLD


@dataclass
class ExclusionsConfig:
    """Objects left out of every diagnostic's results."""

    tables: set[str] = field(default_factory=set)
    indexes: set[str] = field(default_factory=set)
    sequences: set[str] = field(default_factory=set)
    table_size_threshold: int = 0
    index_size_threshold: int = 0
    bloat_size_threshold: int = 0
    bloat_percentage_threshold: float = 0.0
    skip_flyway: bool = False
    skip_liquibase: bool = False

    def to_predicate(self, context: PgContext) -> ExclusionPredicate | None:
        """Build one exclusion predicate for a context, or None if nothing is excluded."""
        return any_of(
            skip_tables_by_name(context, self.tables) if self.tables else None,
            skip_indexes_by_name(context, self.indexes) if self.indexes else None,
            skip_by_sequence_name(context, self.sequences) if self.sequences else None,
            skip_small_tables(self.table_size_threshold) if self.table_size_threshold else None,
            skip_small_indexes(self.index_size_threshold) if self.index_size_threshold else None,
            skip_bloat_under_threshold(self.bloat_size_threshold, self.bloat_percentage_threshold)
            if self.bloat_size_threshold or self.bloat_percentage_threshold
            else None,
            skip_flyway_tables(context) if self.skip_flyway else None,
            skip_liquibase_tables(context) if self.skip_liquibase else None,
        )


@dataclass
class ExecutionConfig:
    parallel: bool = True
    timeout: float | None = None
    max_workers: int | None = None


@dataclass
class Config:
    """Complete configuration for pg-health."""

    schemas: list[str] = field(default_factory=lambda: [DEFAULT_SCHEMA_NAME])
    thresholds: ThresholdConfig = field(default_factory=ThresholdConfig)
    global_checks: CheckConfig = field(default_factory=CheckConfig)
    kind_checks: dict[str, CheckConfig] = field(default_factory=dict)
    exclusions: ExclusionsConfig = field(default_factory=ExclusionsConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)

    def get_check_config(self, kind: str) -> CheckConfig:
        """Get merged check config for a diagnostic kind ("static", "runtime" or "all").

        Kind-specific settings are merged with global settings:
        - exclude: union of global and kind-specific excludes
        - include_only: kind-specific overrides global if set
        """
        global_cfg = self.global_checks
        kind_cfg = self.kind_checks.get(kind, CheckConfig())

        merged_exclude = global_cfg.exclude | kind_cfg.exclude
        merged_include_only = (
            kind_cfg.include_only if kind_cfg.include_only is not None else global_cfg.include_only
        )
        return CheckConfig(exclude=merged_exclude, include_only=merged_include_only)

    def contexts(self) -> list[PgContext]:
        """One context per configured schema, in configuration order."""
        contexts = []
        for schema in self.schemas:
            context = PgContext.of(
                schema, self.thresholds.bloat_percentage, self.thresholds.remaining_percentage
            )
            if context not in contexts:
                contexts.append(context)
        return contexts


def find_config_file() -> str | None:
    """Search for pg-health.yaml in cwd, then home dir.

    Returns:
        Path to config file if found, None otherwise.
    """
    cwd_config = Path.cwd() / CONFIG_FILE_NAME
    if cwd_config.is_file():
        return str(cwd_config)

    home_config = Path.home() / CONFIG_FILE_NAME
    if home_config.is_file():
        return str(home_config)

    return None


def load_config(config_path: str | None = None, auto_discover: bool = True) -> Config:
    """Load configuration from YAML file.

    Args:
        config_path: Explicit path to config file. If None and auto_discover is True,
                     searches default locations.
        auto_discover: If True and config_path is None, search for config file.

    Returns:
        Config object. Returns default config if no file found.
    """
    if config_path is None and auto_discover:
        config_path = find_config_file()

    if config_path is None:
        return Config()

    if not os.path.isfile(config_path):
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    return _parse_config(data)


def _parse_config(data: dict) -> Config:
    """Parse YAML data into Config object."""
    if not isinstance(data, dict):
        raise ValueError("Config file must contain a mapping at the top level")
    config = Config()

    if "schemas" in data:
        schemas = data["schemas"]
        if isinstance(schemas, str):
            schemas = [schemas]
        if not schemas:
            raise ValueError("schemas cannot be empty")
        config.schemas = [str(s) for s in schemas]

    if "thresholds" in data:
        t = data["thresholds"] or {}
        config.thresholds = ThresholdConfig(
            bloat_percentage=float(t.get("bloat_percentage", DEFAULT_BLOAT_PERCENTAGE_THRESHOLD)),
            remaining_percentage=float(t.get("remaining_percentage", DEFAULT_REMAINING_PERCENTAGE_THRESHOLD)),
        )

    if "checks" in data:
        checks = data["checks"] or {}
        config.global_checks = _parse_check_config(checks)
        for kind in KINDS:
            if kind in checks:
                config.kind_checks[kind] = _parse_check_config(checks[kind] or {})

    if "exclusions" in data:
        config.exclusions = _parse_exclusions(data["exclusions"] or {})

    if "execution" in data:
        e = data["execution"] or {}
        config.execution = ExecutionConfig(
            parallel=bool(e.get("parallel", True)),
            timeout=float(e["timeout"]) if e.get("timeout") is not None else None,
            max_workers=int(e["max_workers"]) if e.get("max_workers") is not None else None,
        )

    # Fail early on out-of-range thresholds or blank schemas.
    config.contexts()
    return config


def _parse_check_config(data: dict) -> CheckConfig:
    """Parse check configuration section."""
    exclude = set(data.get("exclude", []) or [])

    include_only = None
    if "include_only" in data:
        include_only = set(data["include_only"] or [])

    return CheckConfig(exclude=exclude, include_only=include_only)


def _parse_exclusions(data: dict) -> ExclusionsConfig:
    return ExclusionsConfig(
        tables=set(data.get("tables", []) or []),
        indexes=set(data.get("indexes", []) or []),
        sequences=set(data.get("sequences", []) or []),
        table_size_threshold=int(data.get("table_size_threshold", 0)),
        index_size_threshold=int(data.get("index_size_threshold", 0)),
        bloat_size_threshold=int(data.get("bloat_size_threshold", 0)),
        bloat_percentage_threshold=float(data.get("bloat_percentage_threshold", 0.0)),
        skip_flyway=bool(data.get("skip_flyway", False)),
        skip_liquibase=bool(data.get("skip_liquibase", False)),
    )


def merge_cli_with_config(
    config: Config,
    kind: str,
    cli_exclude: set[str] | None = None,
    cli_include_only: set[str] | None = None,
    cli_schemas: list[str] | None = None,
    cli_bloat_threshold: float | None = None,
    cli_remaining_threshold: float | None = None,
    cli_timeout: float | None = None,
    cli_no_parallel: bool = False,
) -> tuple[CheckConfig, list[PgContext], ExecutionConfig]:
    """Merge CLI arguments with config file settings.

    CLI arguments take precedence over config file.

    Args:
        config: Loaded configuration.
        kind: Diagnostic kind being run (static, runtime or all).
        cli_exclude: Diagnostics to exclude (from --exclude flag).
        cli_include_only: Diagnostics to include only (from --include-only flag).
        cli_schemas: Schemas to inspect (from --schemas flag).
        cli_bloat_threshold: From --bloat-threshold.
        cli_remaining_threshold: From --remaining-threshold.
        cli_timeout: Per-diagnostic timeout in seconds (from --timeout).
        cli_no_parallel: Query nodes one at a time (from --no-parallel).

    Returns:
        Tuple of (CheckConfig, contexts, ExecutionConfig) with merged settings.
    """
    check_cfg = config.get_check_config(kind)

    # CLI exclude adds to config exclude
    if cli_exclude:
        check_cfg = CheckConfig(
            exclude=check_cfg.exclude | cli_exclude,
            include_only=check_cfg.include_only,
        )

    # CLI include_only completely overrides config
    if cli_include_only is not None:
        check_cfg = CheckConfig(
            exclude=check_cfg.exclude,
            include_only=cli_include_only,
        )

    merged = Config(
        schemas=cli_schemas or config.schemas,
        thresholds=ThresholdConfig(
            bloat_percentage=(
                cli_bloat_threshold if cli_bloat_threshold is not None else config.thresholds.bloat_percentage
            ),
            remaining_percentage=(
                cli_remaining_threshold
                if cli_remaining_threshold is not None
                else config.thresholds.remaining_percentage
            ),
        ),
    )

    exec_cfg = ExecutionConfig(
        parallel=config.execution.parallel and not cli_no_parallel,
        timeout=cli_timeout if cli_timeout is not None else config.execution.timeout,
        max_workers=config.execution.max_workers,
    )

    return check_cfg, merged.contexts(), exec_cfg
