"""Services for the IRScope taste engine."""
