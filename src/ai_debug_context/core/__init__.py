"""Core analysis engine functionality."""
