"""Decision audit sinks."""
