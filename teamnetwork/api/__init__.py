"""HTTP layer for checkout endpoints."""
