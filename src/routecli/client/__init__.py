"""HTTP transport and call outcomes."""

from routecli.client.outcome import Failure, Outcome, Success
from routecli.client.transport import HTTPRequest, HTTPTransport, encode_query

__all__ = [
    "Failure",
    "HTTPRequest",
    "HTTPTransport",
    "Outcome",
    "Success",
    "encode_query",
]
