"""Core services: credential storage, token and workspace resolution, device flow."""
