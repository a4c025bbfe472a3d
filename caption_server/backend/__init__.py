"""Backend layers for the caption server."""
