"""Configuration module for Config-Sync."""
