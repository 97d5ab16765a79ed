"""Package building, storage and search."""
