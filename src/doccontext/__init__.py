"""doccontext: token-bounded documentation search for AI agents."""

__version__ = "0.1.0"
