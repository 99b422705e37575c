"""Leave, timesheet and payroll approval workflows."""

__version__ = "0.1.0"
