"""
Application layer - Core business logic.

Contains the main application workflows:
- drain_loop: claims and applies queued work units until the queue is empty
- aggregator: per-run outcome accounting
- sequencer: ordered, de-duplicated live-session conversation log
"""
