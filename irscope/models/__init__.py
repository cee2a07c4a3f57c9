"""Pydantic models for the persisted taste documents."""
