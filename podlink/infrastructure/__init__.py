"""Infrastructure layer - configuration, SSH and overlay adapters."""
