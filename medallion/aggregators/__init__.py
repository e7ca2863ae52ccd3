"""Gold aggregation and business rules."""
