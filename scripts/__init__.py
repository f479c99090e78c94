"""Operator scripts for the grading kernel."""
