"""Domain models and pure helpers.

Nothing here knows about HTTP, the CLI or the filesystem.
"""
