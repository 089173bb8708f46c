"""Connection manager for injected wallet and bridging fallback providers"""

__version__ = "0.1.0"
