"""Pure domain types for chunked posting runs."""
