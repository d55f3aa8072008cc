"""Classification, optimization, hybrid search and orchestration."""
