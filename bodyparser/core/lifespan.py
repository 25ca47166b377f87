"""Startup and shutdown of process-wide services such as the parse engine."""

from abc import ABC, abstractmethod
from typing import Any, Generic, TypeVar

from robyn import Robyn

from bodyparser.core.logger import LogIcon, logger
from bodyparser.core.settings import settings as st


class State:
    """Attribute-style container injected into handlers as ``state``."""

    __slots__ = ("_data",)

    def __init__(self) -> None:
        object.__setattr__(self, "_data", {})

    def __getattr__(self, name: str) -> Any:
        try:
            return self._data[name]
        except KeyError:
            raise AttributeError(f"State has no attribute '{name}'") from None

    def __setattr__(self, name: str, value: Any) -> None:
        self._data[name] = value

    def __contains__(self, name: str) -> bool:
        return name in self._data

    def __repr__(self) -> str:
        return f"State({self._data})"

    def get(self, name: str, default: Any = None) -> Any:
        return self._data.get(name, default)

    def clear(self) -> None:
        self._data.clear()

T = TypeVar("T")


class BaseEvent(ABC, Generic[T]):
    """Builds one service at startup; stored on the state under ``name``."""

    name: str

    @abstractmethod
    async def startup(self) -> T: ...

    async def shutdown(self, instance: T) -> None:  # noqa: B027
        """Release the service. No-op unless overridden."""

    @classmethod
    def has_shutdown(cls) -> bool:
        return cls.shutdown is not BaseEvent.shutdown


class Lifespan:
    """Starts registered events in order and stops them in reverse."""

    def __init__(self, app: Robyn) -> None:
        self._app = app
        self._registered: list[type[BaseEvent[Any]]] = []
        self._started: list[BaseEvent[Any]] = []
        self._state: State | None = None

    def register(self, event_cls: type[BaseEvent[Any]]) -> "Lifespan":
        self._registered.append(event_cls)
        return self

    @property
    def state(self) -> State | None:
        return self._state

    @property
    def events(self) -> list[BaseEvent[Any]]:
        return self._started

    async def startup(self) -> None:
        logger.info("Starting application lifespan", icon=LogIcon.START, version=st.API_VERSION)
        state = self._state = State()

        for event_cls in self._registered:
            event = event_cls()
            setattr(state, event.name, await event.startup())
            self._started.append(event)
            logger.info("Event ready", icon=LogIcon.SUCCESS, event_name=event.name)

        self._app.inject_global(state=state)

    async def shutdown(self) -> None:
        if self._state is None:
            logger.info("Nothing to shut down", icon=LogIcon.WARNING)
            return

        while self._started:
            event = self._started.pop()
            if event.has_shutdown() and event.name in self._state:
                await event.shutdown(getattr(self._state, event.name))
                logger.info("Event stopped", icon=LogIcon.SUCCESS, event_name=event.name)

        self._state.clear()


def create_lifespan(app: Robyn) -> Lifespan:
    return Lifespan(app)
