"""Two-way sync between Google Keep notes and a folder of markdown files."""

__version__ = "0.1.0"
