"""Intent API for ModelRegistry custom resources."""
