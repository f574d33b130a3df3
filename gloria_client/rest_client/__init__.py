"""
Gloria REST Client Module

HTTP access to the news listing and recap endpoints.
"""
from gloria_client.rest_client.client import NewsRestClient

__all__ = [
    "NewsRestClient",
]
