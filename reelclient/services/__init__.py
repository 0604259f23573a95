"""Thin service callers that issue backend requests through the API client."""
