"""Command-line interface for SecureVault."""
