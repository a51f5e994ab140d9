"""Mail provider webhook endpoints."""
