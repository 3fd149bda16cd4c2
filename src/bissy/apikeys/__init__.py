"""Long-lived API keys bound to a user."""
