"""Session state containers for Moonbridge."""
