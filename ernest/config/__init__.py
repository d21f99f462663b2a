"""Project export configuration and runtime settings."""
