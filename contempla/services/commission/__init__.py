"""Commission cascade."""
