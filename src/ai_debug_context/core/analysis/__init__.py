"""Classification, signature keying, fix generation and application."""
