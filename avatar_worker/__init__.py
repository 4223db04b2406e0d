"""Background queue drains and live-session message ordering for the avatar chat service."""

__version__ = "0.1.0"
