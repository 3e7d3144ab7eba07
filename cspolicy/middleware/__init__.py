"""Request pipeline middleware."""
