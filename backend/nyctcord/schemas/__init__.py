"""Pydantic schemas for decoded feed data and poll results."""
