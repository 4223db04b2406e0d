"""
Service layer - long-running components built on the application layer.
"""
