"""Discord-facing cogs that feed the gateway runtime."""
