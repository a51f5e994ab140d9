"""Order communications: reply tokens, inbound email threading and the admin API."""
