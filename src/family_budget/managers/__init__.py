"""Application managers."""
