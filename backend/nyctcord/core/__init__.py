"""Core infrastructure: configuration, logging, telemetry and storage."""
