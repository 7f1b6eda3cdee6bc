"""Settings, logging and exception types."""
