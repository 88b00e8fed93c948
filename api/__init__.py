"""HTTP API for ffragrance."""
