"""Local dashboard server for running and archiving browser end-to-end tests."""
