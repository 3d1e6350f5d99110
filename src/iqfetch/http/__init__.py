"""HTTP access to the IQ Server REST API."""
