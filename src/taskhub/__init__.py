"""TaskHub - task management API with queued status notifications."""

__version__ = "0.1.0"
