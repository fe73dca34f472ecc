"""pg-health: structural diagnostics for PostgreSQL clusters."""

__version__ = "0.1.0"
