"""Run records: one JSON file per dispatch attempt."""
