"""Command-line interface for folioscope."""
