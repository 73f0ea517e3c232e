"""diarysync - version-tracked diary synchronization backend."""

__version__ = "0.1.0"
