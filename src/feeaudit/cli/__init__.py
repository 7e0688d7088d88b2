"""Command-line interface for the fee distributor audit."""
