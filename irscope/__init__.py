"""IRScope taste engine: tonal features, preference learning and profile matching."""
