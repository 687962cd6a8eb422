"""Pure domain values: enums, DTOs, workflow tables, result types."""
