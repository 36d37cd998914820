"""HTTP and WebSocket surface of the live support core."""
