"""SSH adapters: client-config parameter resolution and tunnelled sessions."""
