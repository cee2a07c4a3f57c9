"""irscope-taste command line interface."""
