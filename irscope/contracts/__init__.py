"""Named shapes shared across the taste services."""
