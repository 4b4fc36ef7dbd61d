"""Content store adapters and HTML sanitization."""
