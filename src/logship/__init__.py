"""Runtime telemetry normalization-and-delivery pipeline."""
