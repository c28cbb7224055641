"""Core domain — models, config, engine, services."""
