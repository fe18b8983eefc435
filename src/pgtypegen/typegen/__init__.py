"""Type resolution, naming and declaration rendering."""
