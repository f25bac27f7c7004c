"""playwire command-line interface."""
