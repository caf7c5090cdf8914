"""Framework-independent instrumentation core."""
