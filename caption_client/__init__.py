"""Live caption client: microphone capture and WebSocket streaming."""
