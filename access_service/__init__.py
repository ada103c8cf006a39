"""
Checkpoint Access Service
Token validation, guard shifts and manual overrides for physical checkpoints.
"""

__version__ = "1.0.0"
