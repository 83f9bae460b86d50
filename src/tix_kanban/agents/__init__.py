"""External agent runners."""
