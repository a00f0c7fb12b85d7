"""Statutory payroll and HR computation engine."""
