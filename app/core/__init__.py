"""
核心功能包
"""

from .exceptions import (
    CampaignIntelException,
    RelayConnectionException,
    RelayNotConnectedException,
    SentimentEngineException,
    StoreUnavailableException,
    ValidationException,
    ConfigurationException
)

from .logging import (
    setup_logging,
    get_logger,
    api_logger,
    relay_logger,
    store_logger,
    sentiment_logger,
    panel_logger,
    db_logger
)

from .middleware import (
    RequestLoggingMiddleware,
    ExceptionHandlingMiddleware
)

__all__ = [
    # Exceptions
    "CampaignIntelException",
    "RelayConnectionException",
    "RelayNotConnectedException",
    "SentimentEngineException",
    "StoreUnavailableException",
    "ValidationException",
    "ConfigurationException",

    # Logging
    "setup_logging",
    "get_logger",
    "api_logger",
    "relay_logger",
    "store_logger",
    "sentiment_logger",
    "panel_logger",
    "db_logger",

    # Middleware
    "RequestLoggingMiddleware",
    "ExceptionHandlingMiddleware",
]
