"""Document index backends for hybrid search."""
