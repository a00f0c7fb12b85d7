"""Payroll and statutory calculators."""
