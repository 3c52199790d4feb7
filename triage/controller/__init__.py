"""Per-alert run loop and the webhook/manual entry controllers."""
