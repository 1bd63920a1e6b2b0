"""Self-contained helper modules used by the alzctl commands."""
