"""Lookup and selection of diagnostics from the catalog."""

from __future__ import annotations

from pg_health.diagnostics import CATALOG, Diagnostic

_BY_NAME: dict[str, Diagnostic] = {d.name: d for d in CATALOG}


def get_diagnostic(name: str | Diagnostic) -> Diagnostic:
    """Return the catalog entry with the given name.

    Raises:
        KeyError: if no diagnostic has that name.
        TypeError: if ``name`` is neither a string nor a Diagnostic.
    """
    if isinstance(name, Diagnostic):
        return name
    if not isinstance(name, str):
        raise TypeError(f"Expected a diagnostic name, got {type(name).__name__}")
    try:
        return _BY_NAME[name.strip().lower()]
    except KeyError:
        raise KeyError(f"Unknown diagnostic: {name}") from None


def all_diagnostics() -> list[Diagnostic]:
    """Return every diagnostic in catalog order."""
    return list(CATALOG)


def select_diagnostics(
    kind: str | None = None,
    exclude: set[str] | None = None,
    include_only: set[str] | None = None,
) -> list[Diagnostic]:
    """
    Select diagnostics for a scan, keeping catalog order.

    Parameters:
        kind (str | None): "static" or "runtime" keeps diagnostics carrying that flag; None keeps all.
        exclude (set[str] | None): Names to drop. Always applied, even to include_only.
        include_only (set[str] | None): If given, only these names are kept and ``kind`` is ignored.

    Returns:
        list[Diagnostic]: The selected diagnostics.
    """
    if kind not in (None, "static", "runtime"):
        raise ValueError(f"Unknown diagnostic kind: {kind}")
    exclude = exclude or set()

    selected = []
    for diagnostic in CATALOG:
        if include_only is not None:
            if diagnostic.name not in include_only:
                continue
        elif kind == "static" and not diagnostic.static:
            continue
        elif kind == "runtime" and not diagnostic.runtime:
            continue
        if diagnostic.name in exclude:
            continue
        selected.append(diagnostic)
    return selected
