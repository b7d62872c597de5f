"""xnote — tray notes with a scriptable CLI, AI titles/drafts and gist sharing."""

__version__ = "1.0.0"
