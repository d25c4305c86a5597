"""Core — models, engine, configuration and host detection."""
