"""Bank statement ingestion: CSV profiles, generic column mapping, Chase PDF text."""
