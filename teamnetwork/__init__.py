"""TeamNetwork payments service."""
