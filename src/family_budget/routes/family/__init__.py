"""Family budget routes package."""
