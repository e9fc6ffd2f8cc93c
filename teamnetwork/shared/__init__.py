"""Database, models, schemas and ambient configuration."""
