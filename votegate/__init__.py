"""Rate limiting and session core for the election platform."""
