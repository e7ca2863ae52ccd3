"""Base class for connections to external services."""
from abc import ABC, abstractmethod
import logging


class BaseConnector(ABC):
    """
    Lifecycle shared by service connections.

    Credentials are attached lazily on the first request. Subclasses provide
    the probe and the teardown.
    """

    def __init__(self, name: str, timeout: int = 30):
        self.name = name
        self.timeout = timeout
        self.authenticated = False
        self.logger = logging.getLogger(f'{__name__}.{name}')

    @abstractmethod
    def authenticate(self) -> bool:
        pass

    @abstractmethod
    def validate_connection(self) -> bool:
        """Probe the service; never raises."""
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    def ensure_authenticated(self) -> None:
        if self.authenticated:
            return
        self.authenticated = self.authenticate()
        if not self.authenticated:
            self.logger.warning(f'{self.name}: authentication did not complete')

    def __enter__(self):
        self.ensure_authenticated()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
