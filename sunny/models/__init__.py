"""Value types and settings."""
