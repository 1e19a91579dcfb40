"""Transport layer: HTTP client, SSE stream decoding and usage tracking."""
