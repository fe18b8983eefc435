"""pgtypegen - generate TypeScript types for SQL queries from a live PostgreSQL schema."""

__version__ = "0.1.0"
