"""Authentication activity trail."""
