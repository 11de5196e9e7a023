"""Services package - business logic for the pipeline."""
