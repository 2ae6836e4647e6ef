"""Settings, outcome schema and the keyed storage medium."""
