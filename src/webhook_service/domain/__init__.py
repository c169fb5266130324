"""Domain models and event catalog."""
