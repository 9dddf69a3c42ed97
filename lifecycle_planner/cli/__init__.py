"""Command line interface for the Lifecycle Planner."""
