"""Pydantic schemas for pipeline data."""
