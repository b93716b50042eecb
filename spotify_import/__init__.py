"""Import a local music library into a Spotify playlist."""

__version__ = "0.1.0"
