"""Data ingestion pipeline for Riksdagsrösten."""
