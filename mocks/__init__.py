"""Mock upstream services for local development and tests."""
