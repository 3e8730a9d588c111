"""Social platform publishing service: OAuth account linking and video publishing."""

__version__ = "0.1.0"
