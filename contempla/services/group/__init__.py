"""Group lifecycle and queries."""
