"""
Entry point for running the host via `python -m mineru_host`.

Starts a supervisory session for the MinerU API.
"""

from .main import run

if __name__ == "__main__":
    run()
