# dispatcher.py
import logging
from typing import Any, Callable, Dict

log = logging.getLogger(__name__)


class UnknownCommand(KeyError):
    pass


class Dispatcher:
    """Maps UI events to handlers registered explicitly by name."""

    def __init__(self):
        self._handlers: Dict[str, Callable[..., Any]] = {}

    def register(self, command: str, handler: Callable[..., Any]) -> None:
        if command in self._handlers:
            raise ValueError(f"Command '{command}' is already registered")
        self._handlers[command] = handler

    def dispatch(self, command: str, *args, **kwargs) -> Any:
        try:
            handler = self._handlers[command]
        except KeyError:
            raise UnknownCommand(command)
        log.debug(f"Dispatching {command}")
        return handler(*args, **kwargs)

    @property
    def commands(self):
        return sorted(self._handlers)
