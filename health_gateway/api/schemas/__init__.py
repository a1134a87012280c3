"""Pydantic models for the gateway's own wire contracts."""
