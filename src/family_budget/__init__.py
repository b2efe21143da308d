"""Family Budget API: shared household budgeting backend."""
