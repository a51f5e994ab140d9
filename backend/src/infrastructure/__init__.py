"""Infrastructure adapters for attachment storage and MIME parsing."""
