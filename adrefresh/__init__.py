"""Ad refresh orchestration: rate limiting, provider dispatch, retries and metrics."""

__version__ = "0.1.0"
