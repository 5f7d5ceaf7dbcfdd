"""HTTP interface for FileFinder."""
