"""Registry mapping DSN schemes to backend factories."""

from typing import Callable, Dict, Union

from corpus_agent.core.exceptions import SchemeNotRegisteredError
from corpus_agent.platform.backends._base import Backend
from corpus_agent.platform.backends.dsn import DSN

BackendFactory = Callable[[DSN], Backend]

_factories: Dict[str, BackendFactory] = {}


def register_backend_factory(scheme: str, factory: BackendFactory) -> None:
    """Register the factory building backends for a scheme.

    Registering a scheme twice replaces the previous factory.
    """
    _factories[scheme.lower()] = factory


def registered_schemes() -> list:
    """Return the registered schemes, sorted."""
    return sorted(_factories)


def new_backend(dsn: Union[str, DSN]) -> Backend:
    """Build a backend from a DSN.

    The factory receives a copy of the DSN, so the keys it consumes do not
    disappear from the caller's instance.

    Args:
        dsn: DSN string or parsed DSN

    Returns:
        The backend

    Raises:
        ConfigurationError: If the DSN or one of its parameters is invalid
        SchemeNotRegisteredError: If no factory handles the scheme
    """
    if isinstance(dsn, str):
        dsn = DSN.parse(dsn)

    factory = _factories.get(dsn.scheme)
    if factory is None:
        raise SchemeNotRegisteredError(dsn.scheme)

    return factory(dsn.copy())
