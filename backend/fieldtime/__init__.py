"""Daily time tracking and performance reports for field-service employees."""
