"""ragsearch: cached search orchestration for retrieval-augmented generation."""
