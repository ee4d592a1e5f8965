"""
MinerU Host - bootstraps, runs and supervises the MinerU API server.

Provides one-time Python environment setup, process supervision with
graceful shutdown, and periodic cleanup of the API's output directory.
"""

__version__ = "0.1.0"
