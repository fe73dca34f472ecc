"""Tests for pg_health.registry and the diagnostic catalog."""

from __future__ import annotations

import pytest

from pg_health.diagnostics import CATALOG, Diagnostic, ExecutionTopology, QueryParams
from pg_health.extractors import get_extractor
from pg_health.models import IndexWithSize, Table
from pg_health.registry import all_diagnostics, get_diagnostic, select_diagnostics
from pg_health.sql_templates import available_queries, get_query


class TestCatalog:
    def test_returns_diagnostics(self):
        assert len(all_diagnostics()) == 37

    def test_catalog_order_is_kept(self):
        assert all_diagnostics() == list(CATALOG)
        assert all_diagnostics()[0].name == "bloated_indexes"

    def test_no_duplicate_names(self):
        names = [d.name for d in all_diagnostics()]
        assert len(names) == len(set(names)), (
            f"Duplicate names: {[n for n in names if names.count(n) > 1]}"
        )

    def test_sql_files_unique_lower_case_and_sql(self):
        files = [d.sql_file for d in all_diagnostics()]
        assert len(files) == len(set(files))
        for f in files:
            assert f == f.lower(), f
            assert f.endswith(".sql"), f

    def test_every_diagnostic_is_static_or_runtime(self):
        for d in all_diagnostics():
            assert d.static or d.runtime, d.name

    def test_all_nodes_union_implies_runtime(self):
        for d in all_diagnostics():
            if d.topology is ExecutionTopology.ALL_NODES_UNION:
                assert d.runtime, d.name

    def test_at_least_two_across_cluster(self):
        assert sum(1 for d in all_diagnostics() if d.is_across_cluster) >= 2

    def test_at_least_five_runtime_only(self):
        assert sum(1 for d in all_diagnostics() if d.runtime and not d.static) >= 5

    def test_every_sql_file_exists(self):
        for d in all_diagnostics():
            assert get_query(d.sql_file).strip(), d.name

    def test_no_orphan_sql_files(self):
        assert sorted(d.sql_file for d in all_diagnostics()) == available_queries()

    def test_every_result_type_has_extractor(self):
        for d in all_diagnostics():
            assert callable(get_extractor(d.result_type)), d.name

    def test_no_extractor_without_a_diagnostic(self):
        assert IndexWithSize not in {d.result_type for d in all_diagnostics()}
        with pytest.raises(KeyError, match="IndexWithSize"):
            get_extractor(IndexWithSize)

    def test_queries_bind_declared_params(self):
        for d in all_diagnostics():
            sql = get_query(d.sql_file)
            for name in d.params.names:
                assert f"%({name})s" in sql, f"{d.name} does not bind {name}"

    def test_threshold_params(self):
        assert get_diagnostic("bloated_indexes").params is QueryParams.BLOAT
        assert get_diagnostic("bloated_tables").params is QueryParams.BLOAT
        assert get_diagnostic("sequence_overflow").params is QueryParams.REMAINING
        assert get_diagnostic("invalid_indexes").params is QueryParams.SCHEMA

    def test_str_is_name(self):
        assert str(get_diagnostic("unused_indexes")) == "unused_indexes"


class TestDiagnosticValidation:
    def test_neither_static_nor_runtime_rejected(self):
        with pytest.raises(ValueError, match="static, runtime or both"):
            Diagnostic("x", "x.sql", False, False, ExecutionTopology.PRIMARY_ONLY, QueryParams.SCHEMA, Table, "")

    def test_static_across_cluster_rejected(self):
        with pytest.raises(ValueError, match="must be runtime"):
            Diagnostic("x", "x.sql", True, False, ExecutionTopology.ALL_NODES_UNION, QueryParams.SCHEMA, Table, "")

    def test_kind(self):
        assert get_diagnostic("invalid_indexes").kind == "both"
        assert get_diagnostic("unused_indexes").kind == "runtime"
        assert get_diagnostic("duplicated_indexes").kind == "static"

    def test_frozen(self):
        d = get_diagnostic("unused_indexes")
        with pytest.raises(AttributeError):
            d.name = "other"


class TestGetDiagnostic:
    def test_by_name(self):
        d = get_diagnostic("tables_without_primary_key")
        assert d.name == "tables_without_primary_key"
        assert d.result_type is Table

    def test_name_is_normalized(self):
        assert get_diagnostic("  Unused_Indexes ").name == "unused_indexes"

    def test_diagnostic_passes_through(self):
        d = get_diagnostic("unused_indexes")
        assert get_diagnostic(d) is d

    def test_unknown_raises_key_error(self):
        with pytest.raises(KeyError, match="no_such_check"):
            get_diagnostic("no_such_check")

    def test_wrong_type_raises_type_error(self):
        with pytest.raises(TypeError):
            get_diagnostic(42)


class TestSelectDiagnostics:
    def test_all_by_default(self):
        assert select_diagnostics() == all_diagnostics()

    def test_static_kind(self):
        selected = select_diagnostics(kind="static")
        assert selected
        assert all(d.static for d in selected)
        assert "invalid_indexes" in {d.name for d in selected}

    def test_runtime_kind(self):
        names = {d.name for d in select_diagnostics(kind="runtime")}
        assert {"bloated_indexes", "unused_indexes", "invalid_indexes"} <= names
        assert "duplicated_indexes" not in names

    def test_exclude(self):
        names = {d.name for d in select_diagnostics(exclude={"unused_indexes"})}
        assert "unused_indexes" not in names
        assert len(names) == len(all_diagnostics()) - 1

    def test_include_only_overrides_kind(self):
        selected = select_diagnostics(kind="static", include_only={"unused_indexes"})
        assert [d.name for d in selected] == ["unused_indexes"]

    def test_exclude_applies_to_include_only(self):
        selected = select_diagnostics(
            include_only={"unused_indexes", "invalid_indexes"}, exclude={"invalid_indexes"}
        )
        assert [d.name for d in selected] == ["unused_indexes"]

    def test_keeps_catalog_order(self):
        selected = select_diagnostics(include_only={"unused_indexes", "bloated_indexes"})
        assert [d.name for d in selected] == ["bloated_indexes", "unused_indexes"]

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            select_diagnostics(kind="audit")
