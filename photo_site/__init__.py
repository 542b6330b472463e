"""Personal site backend: logging endpoints and photo gallery ingestion."""
