"""Pure helper functions for alert processing."""
