"""pgtypegen command line interface."""
