"""Workspace git access and container capability checks."""
