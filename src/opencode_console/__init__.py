"""Session dashboard over OpenCode storage, with trash/restore and Codex usage."""

__version__ = "0.1.0"
