"""Configuration, logging and default collaborators."""
