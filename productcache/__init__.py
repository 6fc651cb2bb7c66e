"""Byte-budgeted product cache with cache-aside reads and write-through writes."""
