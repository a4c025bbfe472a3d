"""Command-line streaming clients (microphone and audio file)."""
