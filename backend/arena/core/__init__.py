"""Configuration, persistence, token and logging helpers."""
