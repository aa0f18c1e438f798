"""Pydantic schemas for JSON payloads persisted alongside models."""
