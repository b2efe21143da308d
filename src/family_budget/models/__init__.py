"""Family aggregate documents."""
