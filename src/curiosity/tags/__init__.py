"""Tag catalog and daily tag selection."""
