"""Configuration, application context and error taxonomy."""
