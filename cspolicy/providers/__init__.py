"""Collaborators consumed by the header renderer and middleware."""
