"""Celery worker runtime for scheduled polling."""
