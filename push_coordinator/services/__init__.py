"""Coordinator services."""
