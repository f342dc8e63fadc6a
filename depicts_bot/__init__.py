"""Add "depicts" statements to Wikimedia Commons files from Wikidata image data."""

__version__ = "1.0.0"
