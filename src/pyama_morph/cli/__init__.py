"""pyama-morph command-line interface."""
