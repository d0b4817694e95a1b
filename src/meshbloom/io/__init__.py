"""State snapshot transport."""
