"""Pydantic schemas for subscription state and registry payloads."""
