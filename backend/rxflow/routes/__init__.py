"""Session routes."""
