"""Pure types and schedule evaluation for the periodic jobs."""
