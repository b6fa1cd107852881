"""SQLite persistence: declarative base, engine factory and tables."""
