"""Domain services: chunking, parsing, progress streaming, document management."""
