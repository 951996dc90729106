"""Core module: execution engine, transport, retry, logging, metrics and configuration."""
