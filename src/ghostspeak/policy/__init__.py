"""Policy resolution from versioned JSON configuration."""
