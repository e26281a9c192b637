"""Portfolio tracker backend."""
