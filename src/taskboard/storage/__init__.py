"""SQLite persistence for the task board."""
