"""Payment confirmation."""
