# src/offering_gateway/utils/exceptions.py

CALLER = "caller"
CONFIGURATION = "configuration"
UPSTREAM = "upstream"


class OfferingGatewayError(Exception):
    """Base exception class for the Offering Gateway"""
    pass

class ConfigurationError(OfferingGatewayError):
    """Raised when there are issues with configuration"""
    pass

class InitializationError(OfferingGatewayError):
    """Raised when component initialization fails"""
    pass

class MarketplaceError(OfferingGatewayError):
    """Raised when the marketplace provider rejects or fails a call"""
    retryable = True


class GatewayError(OfferingGatewayError):
    """
    Base class for errors raised by gateway routes and the route registry.

    `category` tells callers whether the cause is their own input, the
    gateway configuration or a backing Thing. Only upstream errors are
    worth retrying.
    """
    category: str = CONFIGURATION
    retryable: bool = False
    status_code: int = 500

class RouteInvalid(GatewayError):
    """Raised when an invalid route is registered or accessed"""
    status_code = 409

class NoCompatibleForm(GatewayError):
    """Raised when no usable form exists for an interaction verb"""
    pass

class DuplicateUri(GatewayError):
    """Raised when a route URI is already registered"""
    status_code = 409

class RouteNotFound(GatewayError):
    """Raised when no route is registered under a URI"""
    status_code = 404

class IdRequired(GatewayError):
    """Raised when an aggregated write/action route is accessed without id"""
    category = CALLER
    status_code = 400

class InvalidId(GatewayError):
    """Raised when an id does not address a backing Thing"""
    category = CALLER
    status_code = 400

class MethodNotAllowed(GatewayError):
    """Raised when a route is dispatched with the wrong method"""
    category = CALLER
    status_code = 405

class ThingUnreachable(GatewayError):
    """Raised when a backing Thing fails, times out or answers with an error status"""
    category = UPSTREAM
    retryable = True
    status_code = 502

class MalformedResponse(GatewayError):
    """Raised when a Thing answers with a body that is not JSON"""
    category = UPSTREAM
    status_code = 502


class DatabaseError(Exception):
    """Base exception for database errors"""
    pass

class ConnectionPoolError(DatabaseError):
    """Exception for connection pool related errors"""
    pass
