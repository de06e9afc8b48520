"""Service layer for feed polling and line state transitions."""
