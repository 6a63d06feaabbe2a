"""HTTP surface: admin API and the proxying entry point."""
