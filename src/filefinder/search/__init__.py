"""Query compilation, execution and background search sessions."""
