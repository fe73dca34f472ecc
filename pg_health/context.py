"""Scan context: target schema and thresholds used to template diagnostic queries."""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_SCHEMA_NAME = "public"
DEFAULT_BLOAT_PERCENTAGE_THRESHOLD = 10.0
DEFAULT_REMAINING_PERCENTAGE_THRESHOLD = 10.0


def not_blank(value: str, argument_name: str) -> str:
    if value is None:
        raise ValueError(f"{argument_name} cannot be None")
    if not str(value).strip():
        raise ValueError(f"{argument_name} cannot be blank")
    return value


def valid_percent(value: float, argument_name: str) -> float:
    if value is None or not 0.0 <= float(value) <= 100.0:
        raise ValueError(f"{argument_name} should be in the range from 0.0 to 100.0 inclusive")
    return float(value)


def not_negative(value: int, argument_name: str) -> int:
    if value < 0:
        raise ValueError(f"{argument_name} cannot be less than zero")
    return value


@dataclass(frozen=True)
class PgContext:
    """Immutable parameters for one diagnostic run.

    Attributes:
        schema_name: Schema the diagnostic queries are restricted to (stored lower-case).
        bloat_percentage_threshold: Minimal bloat percentage reported by bloat diagnostics.
        remaining_percentage_threshold: Sequences with less remaining capacity are reported.
    """

    schema_name: str = DEFAULT_SCHEMA_NAME
    bloat_percentage_threshold: float = DEFAULT_BLOAT_PERCENTAGE_THRESHOLD
    remaining_percentage_threshold: float = DEFAULT_REMAINING_PERCENTAGE_THRESHOLD

    def __post_init__(self):
        schema = not_blank(self.schema_name, "schema_name").strip().lower()
        object.__setattr__(self, "schema_name", schema)
        object.__setattr__(
            self,
            "bloat_percentage_threshold",
            valid_percent(self.bloat_percentage_threshold, "bloat_percentage_threshold"),
        )
        object.__setattr__(
            self,
            "remaining_percentage_threshold",
            valid_percent(self.remaining_percentage_threshold, "remaining_percentage_threshold"),
        )

    @property
    def is_default_schema(self) -> bool:
        return self.schema_name == DEFAULT_SCHEMA_NAME

    def enrich_with_schema(self, object_name: str) -> str:
        """Qualify an object name with this context's schema unless it is the default one.

        Names that already carry the schema prefix are returned unchanged, so
        enriching twice is harmless.
        """
        not_blank(object_name, "object_name")
        if self.is_default_schema:
            return object_name
        prefix = self.schema_name + "."
        if object_name.lower().startswith(prefix):
            return object_name
        return prefix + object_name

    @classmethod
    def of(
        cls,
        schema_name: str,
        bloat_percentage_threshold: float = DEFAULT_BLOAT_PERCENTAGE_THRESHOLD,
        remaining_percentage_threshold: float = DEFAULT_REMAINING_PERCENTAGE_THRESHOLD,
    ) -> PgContext:
        return cls(schema_name, bloat_percentage_threshold, remaining_percentage_threshold)

    @classmethod
    def of_default(cls) -> PgContext:
        return cls()

    def __str__(self):
        return (
            f"PgContext(schema={self.schema_name}, "
            f"bloat>={self.bloat_percentage_threshold}%, "
            f"remaining<={self.remaining_percentage_threshold}%)"
        )
