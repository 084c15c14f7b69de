from .base import ApplicationError, ErrorCode, ErrorLevel
from .circuit_breaker import CircuitBreaker, CircuitState, RetryWithCircuitBreaker
from .errors import NotFoundError, ServiceError, ValidationError
