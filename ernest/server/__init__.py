"""FastAPI command surface for the export engine."""
