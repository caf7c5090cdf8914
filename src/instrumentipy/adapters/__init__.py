"""Adapters connecting the core to frameworks and telemetry backends."""
