"""Local registry API."""
