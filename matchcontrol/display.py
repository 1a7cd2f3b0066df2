"""Registry of remote web displays and their URL-encoded configuration."""

from __future__ import annotations

import dataclasses
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import IntEnum
from typing import Callable, Mapping, Sequence
from urllib.parse import quote_plus, unquote_plus

MIN_DISPLAY_ID = 100
DISPLAY_PURGE_TTL = timedelta(minutes=30)


class DisplayType(IntEnum):
    """Kinds of display that can connect to the arena."""

    INVALID = 0
    PLACEHOLDER = 1
    ALLIANCE_STATION = 2
    ANNOUNCER = 3
    AUDIENCE = 4
    BRACKET = 5
    FIELD_MONITOR = 6
    QUEUEING = 7
    RANKINGS = 8
    TWITCH_STREAM = 9

    @property
    def label(self) -> str:
        """Human-readable name of the display type."""
        return _NAMES.get(self, "")

    @property
    def path(self) -> str:
        """URL path at which the display is served."""
        return _PATHS.get(self, "")


_NAMES = {
    DisplayType.PLACEHOLDER: "Placeholder",
    DisplayType.ALLIANCE_STATION: "Alliance Station",
    DisplayType.ANNOUNCER: "Announcer",
    DisplayType.AUDIENCE: "Audience",
    DisplayType.BRACKET: "Bracket",
    DisplayType.FIELD_MONITOR: "Field Monitor",
    DisplayType.QUEUEING: "Queueing",
    DisplayType.RANKINGS: "Rankings",
    DisplayType.TWITCH_STREAM: "Twitch Stream",
}

_PATHS = {
    DisplayType.PLACEHOLDER: "/display",
    DisplayType.ALLIANCE_STATION: "/displays/alliance_station",
    DisplayType.ANNOUNCER: "/displays/announcer",
    DisplayType.AUDIENCE: "/displays/audience",
    DisplayType.BRACKET: "/displays/bracket",
    DisplayType.FIELD_MONITOR: "/displays/field_monitor",
    DisplayType.QUEUEING: "/displays/queueing",
    DisplayType.RANKINGS: "/displays/rankings",
    DisplayType.TWITCH_STREAM: "/displays/twitch",
}

_RESERVED_KEYS = ("displayId", "nickname")


@dataclass
class DisplayConfiguration:
    """Identity, nickname, type and per-type settings of a display."""

    id: str
    nickname: str = ""
    type: DisplayType = DisplayType.INVALID
    configuration: dict[str, str] = field(default_factory=dict)

    def copy(self) -> DisplayConfiguration:
        """Return an independent copy of this configuration."""
        return dataclasses.replace(self, configuration=dict(self.configuration))


@dataclass
class Display:
    """A registered display and its connection state."""

    configuration: DisplayConfiguration
    ip_address: str = ""
    connection_count: int = 0
    last_connected_time: datetime | None = None
    listeners: list[Callable[[str], None]] = field(default_factory=list, compare=False)

    def to_url(self) -> str:
        """Return the display's URL with all of its configuration parameters."""
        config = self.configuration
        parts = [f"{config.type.path}?displayId={quote_plus(config.id)}"]
        if config.nickname:
            parts.append(f"&nickname={quote_plus(config.nickname)}")
        for key in sorted(config.configuration):
            parts.append(f"&{quote_plus(key)}={quote_plus(config.configuration[key])}")
        return "".join(parts)

    def _notify_listeners(self) -> None:
        url = self.to_url()
        for listener in self.listeners:
            listener(url)


def display_from_url(path: str, query: Mapping[str, Sequence[str]]) -> DisplayConfiguration:
    """Extract a display configuration from a websocket URL path and its query parameters."""
    if "displayId" not in query:
        raise ValueError("Display ID not present in request.")

    nickname = unquote_plus(query["nickname"][0]) if "nickname" in query else ""
    display_type = next(
        (kind for kind, kind_path in _PATHS.items() if path == kind_path + "/websocket"),
        DisplayType.INVALID,
    )
    if display_type == DisplayType.INVALID:
        raise ValueError(f"Could not determine display type from path {path}.")

    configuration = {
        key: unquote_plus(values[0])
        for key, values in query.items()
        if key not in _RESERVED_KEYS
    }
    return DisplayConfiguration(
        id=query["displayId"][0],
        nickname=nickname,
        type=display_type,
        configuration=configuration,
    )


class DisplayRegistry:
    """Thread-safe collection of the displays known to the arena."""

    def __init__(self, on_change: Callable[[dict[str, Display]], None] | None = None) -> None:
        self.displays: dict[str, Display] = {}
        self._on_change = on_change
        self._lock = threading.RLock()

    def _notify(self) -> None:
        if self._on_change is not None:
            snapshot = {display_id: dataclasses.replace(display)
                        for display_id, display in self.displays.items()}
            self._on_change(snapshot)

    def next_display_id(self) -> str:
        """Return the lowest unused display ID, starting from 100."""
        with self._lock:
            candidate = MIN_DISPLAY_ID
            while str(candidate) in self.displays:
                candidate += 1
            return str(candidate)

    def register(self, config: DisplayConfiguration, ip_address: str) -> Display:
        """Create or reconnect the given display and return it."""
        with self._lock:
            display = self.displays.get(config.id)
            if display is not None and config.type == DisplayType.PLACEHOLDER:
                # A reconnecting placeholder adopts the configuration already registered.
                display.connection_count += 1
                display.ip_address = ip_address
            else:
                if display is None:
                    display = Display(configuration=config.copy())
                    self.displays[config.id] = display
                display.configuration = config.copy()
                display.ip_address = ip_address
                display.connection_count += 1
                display.last_connected_time = datetime.now()
                display._notify_listeners()
            self._notify()
            return display

    def update(self, config: DisplayConfiguration) -> None:
        """Replace a registered display's configuration, notifying if it changed."""
        with self._lock:
            display = self.displays.get(config.id)
            if display is None:
                raise KeyError(f"Display {config.id} doesn't exist.")
            if config != display.configuration:
                display.configuration = config.copy()
                display._notify_listeners()
                self._notify()

    def mark_disconnected(self, display_id: str) -> None:
        """Record that a connection of the given display has closed."""
        with self._lock:
            display = self.displays.get(display_id)
            if display is None:
                return
            config = display.configuration
            if (
                display.connection_count == 1
                and config.type == DisplayType.PLACEHOLDER
                and not config.nickname
                and not config.configuration
            ):
                # Unconfigured placeholders are dropped at once to avoid clutter.
                del self.displays[config.id]
            else:
                display.connection_count -= 1
            display.last_connected_time = datetime.now()
            self._notify()

    def purge_disconnected(self, now: datetime | None = None) -> None:
        """Remove unnamed displays that have had no connection for the purge period."""
        now = now or datetime.now()
        with self._lock:
            stale = [
                display_id
                for display_id, display in self.displays.items()
                if display.connection_count == 0
                and not display.configuration.nickname
                and display.last_connected_time is not None
                and now - display.last_connected_time >= DISPLAY_PURGE_TTL
            ]
            for display_id in stale:
                del self.displays[display_id]
            if stale:
                self._notify()