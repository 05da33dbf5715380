"""Background jobs for duplicate detection and address resolution."""
