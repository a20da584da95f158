"""Execution core: workspaces, process supervision, artifacts and scheduling."""
