"""
Global configuration for cutviz.

This module provides configuration options that affect how element
connections are addressed, cached and fetched, following the Ibis config
pattern.
"""

from ibis.config import Config


class Connections(Config):
    """Configuration for element data connections.

    Attributes
    ----------
    url_prefix : str
        Prefix prepended to every connection path when building its URL.

        Default: "/api"

    cache : bool
        Share fetched payloads between connections with an identical URL.

        When enabled, a connection whose URL was already fetched completes
        synchronously from the cache instead of issuing a new request. Each
        element still owns its own Connection objects; only the payload is
        shared.

        Default: True

        Example:
            >>> from cutviz import options
            >>> options.connections.cache = False
            >>> # Every connection now goes to the transport...
            >>> options.connections.cache = True

    cache_size : int
        Maximum number of payloads a connection cache keeps. The least
        recently used payload is evicted first.

        Default: 256
    """

    url_prefix: str = "/api"
    cache: bool = True
    cache_size: int = 256


class Transport(Config):
    """Configuration for the HTTP transport.

    Attributes
    ----------
    base_url : str
        Base URL of the dataset API used by ``HttpTransport``.

        Default: "http://localhost:5000/api"

    timeout : float
        Request timeout in seconds.

        Default: 30.0
    """

    base_url: str = "http://localhost:5000/api"
    timeout: float = 30.0


class Options(Config):
    """cutviz configuration options.

    Attributes
    ----------
    connections : Connections
        Options controlling connection addressing and caching.
    transport : Transport
        Options controlling the HTTP transport.

    Example:
        >>> from cutviz import options
        >>> options.set("connections.url_prefix", "/v2")
        >>> options.get("connections.url_prefix")
        '/v2'
    """

    connections: Connections = Connections()
    transport: Transport = Transport()


# Global options instance
options = Options()
