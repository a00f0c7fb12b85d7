"""HTTP API for the payroll core."""
