"""Match flow control: station assignment, match periods, e-stops and driver station control."""

from __future__ import annotations

import dataclasses
import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable

from .display import DisplayRegistry
from .driver_station import DriverStationConnection
from .event_status import EventStatus
from .score import Score
from .states import MatchInfo, MatchState
from .team_match_log import TeamMatchLog
from .timing import MatchSound, MatchTiming, match_sounds

logger = logging.getLogger(__name__)

DS_PACKET_PERIOD = timedelta(milliseconds=250)
MATCH_END_SCORE_DWELL_SEC = 3
POST_TIMEOUT_SEC = 4

STATIONS = ("R1", "R2", "R3", "B1", "B2", "B3")
RED_STATIONS = STATIONS[:3]
BLUE_STATIONS = STATIONS[3:]
_STATION_FIELDS = {
    "R1": "red1",
    "R2": "red2",
    "R3": "red3",
    "B1": "blue1",
    "B2": "blue2",
    "B3": "blue3",
}
_OUT_OF_MATCH_STATES = (MatchState.PRE_MATCH, MatchState.START_MATCH, MatchState.POST_MATCH)
_TIMEOUT_STATES = (MatchState.TIMEOUT_ACTIVE, MatchState.POST_TIMEOUT)

Notify = Callable[[str, Any], None]


class ArenaError(Exception):
    """Raised when an arena operation is not allowed in its current state."""


@dataclass
class Team:
    """A team known to the event."""

    id: int
    nickname: str = ""
    city: str = ""
    has_connected: bool = False


@dataclass
class AllianceStation:
    """One of the six driver stations and the team and robot state in it."""

    ds_conn: DriverStationConnection | None = None
    ethernet: bool = False
    astop: bool = False
    estop: bool = False
    bypass: bool = False
    team: Team | None = None
    estop_pressed: bool = False


class Arena:
    """Controls the flow of matches on the field."""

    def __init__(
        self,
        timing: MatchTiming | None = None,
        notify: Notify | None = None,
        log_dir: str | os.PathLike[str] | None = None,
    ) -> None:
        self.timing = timing or MatchTiming()
        self._notify_callback = notify
        self.log_dir = log_dir
        self.teams: dict[int, Team] = {}
        self.matches: list[MatchInfo] = []
        self.alliance_stations = {station: AllianceStation() for station in STATIONS}
        self.displays = DisplayRegistry(
            on_change=lambda displays: self._notify("displayConfiguration", displays)
        )
        self.event_status = EventStatus()

        self.match_state = MatchState.PRE_MATCH
        self.current_match = MatchInfo(type="test", display_name="Test Match")
        self.match_start_time: datetime | None = None
        self.last_match_time_sec = 0.0
        self.last_ds_packet_time: datetime | None = None
        self._last_match_state: MatchState | None = None
        self.red_score = Score()
        self.blue_score = Score()
        self.field_volunteers = False
        self.field_reset = False
        self.field_estop = False
        self.mute_match_sounds = False
        self._match_aborted = False
        self._sounds: list[MatchSound] = match_sounds(self.timing)
        self._sounds_played: set[int] = set()

        self.audience_display_mode = "blank"
        self.alliance_station_display_mode = "match"
        self.load_test_match()
        self.last_match_time_sec = 0.0
        self._last_match_state = None

    # Notifications -------------------------------------------------------------------------

    def _notify(self, topic: str, message: Any = None) -> None:
        if self._notify_callback is not None:
            self._notify_callback(topic, message)

    def _notify_audience_mode(self) -> None:
        self._notify("audienceDisplayMode", self.audience_display_mode)

    def _notify_alliance_station_mode(self) -> None:
        self._notify("allianceStationDisplayMode", self.alliance_station_display_mode)

    def _notify_realtime_score(self) -> None:
        self._notify(
            "realtimeScore",
            {
                "red": self.red_score.summarize(),
                "blue": self.blue_score.summarize(),
                "match_state": self.match_state,
            },
        )

    def _play_sound(self, name: str) -> None:
        if not self.mute_match_sounds:
            self._notify("playSound", name)

    @staticmethod
    def _after(delay_sec: float, action: Callable[[], None]) -> None:
        timer = threading.Timer(delay_sec, action)
        timer.daemon = True
        timer.start()

    def _blank_displays(self) -> None:
        self.audience_display_mode = "blank"
        self._notify_audience_mode()
        self.alliance_station_display_mode = "logo"
        self._notify_alliance_station_mode()

    # Match loading -------------------------------------------------------------------------

    def load_match(self, match: MatchInfo) -> None:
        """Set up the arena for the given match."""
        if self.match_state != MatchState.PRE_MATCH:
            raise ArenaError(
                "Cannot load match while there is a match still in progress or with results pending."
            )
        self.current_match = match
        for station, attribute in _STATION_FIELDS.items():
            self.assign_team(getattr(match, attribute), station)

        self._sounds_played = set()
        self.red_score = Score()
        self.blue_score = Score()
        self.field_volunteers = False
        self.field_reset = False

        self._notify("matchLoad", self.current_match)
        self._notify_realtime_score()
        self.alliance_station_display_mode = "match"
        self._notify_alliance_station_mode()

    def load_test_match(self) -> None:
        """Load an empty test match."""
        self.load_match(MatchInfo(type="test", display_name="Test Match"))

    def load_next_match(self) -> None:
        """Load the first unplayed match of the current type, or a test match if none is left."""
        next_match = self._next_match(exclude_current=False)
        if next_match is None:
            self.load_test_match()
        else:
            self.load_match(next_match)

    def _next_match(self, exclude_current: bool) -> MatchInfo | None:
        if self.current_match.type == "test":
            return None
        for match in self.matches:
            if match.type != self.current_match.type or match.is_complete():
                continue
            if exclude_current and match.id == self.current_match.id:
                continue
            return dataclasses.replace(match)
        return None

    def _save_match(self, match: MatchInfo) -> None:
        for index, stored in enumerate(self.matches):
            if stored.id == match.id:
                self.matches[index] = match
                return

    def assign_team(self, team_id: int, station: str) -> None:
        """Load a team into a station, dropping the previous team's connection."""
        if station not in self.alliance_stations:
            raise ArenaError(f"Invalid alliance station '{station}'.")
        alliance_station = self.alliance_stations[station]

        ds_conn = alliance_station.ds_conn
        if ds_conn is not None and ds_conn.team_id == team_id:
            return
        if ds_conn is not None:
            ds_conn.close()
            alliance_station.team = None
            alliance_station.ds_conn = None

        if team_id == 0:
            alliance_station.team = None
            return

        stored = self.teams.get(team_id)
        # Unknown teams are allowed to play anonymously.
        alliance_station.team = dataclasses.replace(stored) if stored else Team(id=team_id)

    def substitute_team(self, team_id: int, station: str) -> None:
        """Assign a team to a station and record it in the current match."""
        if not self.current_match.allows_substitution():
            raise ArenaError("Can't substitute teams for qualification matches.")
        self.assign_team(team_id, station)
        setattr(self.current_match, _STATION_FIELDS[station], team_id)
        self._notify("matchLoad", self.current_match)
        if self.current_match.type != "test":
            self._save_match(self.current_match)

    # Match control -------------------------------------------------------------------------

    def _check_stations_ready(self, stations: tuple[str, ...]) -> None:
        for station in stations:
            alliance_station = self.alliance_stations[station]
            if alliance_station.estop:
                raise ArenaError("Cannot start match while an emergency stop is active.")
            if not alliance_station.bypass and (
                alliance_station.ds_conn is None or not alliance_station.ds_conn.robot_linked
            ):
                raise ArenaError("Cannot start match until all robots are connected or bypassed.")

    def check_can_start_match(self) -> None:
        """Raise ArenaError if the match cannot be started now."""
        if self.match_state != MatchState.PRE_MATCH:
            raise ArenaError(
                "Cannot start match while there is a match still in progress or with results pending."
            )
        self._check_stations_ready(STATIONS)
        if self.field_estop:
            raise ArenaError("Cannot start match while field emergency stop is active.")

    def start_match(self) -> None:
        """Start the match if all conditions are met."""
        self.check_can_start_match()
        match = self.current_match
        match.started_at = datetime.now()
        if match.type != "test":
            self._save_match(match)
        self.event_status.update_cycle_time(match.started_at)
        self._notify("eventStatus", self.event_status)

        for alliance_station in self.alliance_stations.values():
            ds_conn = alliance_station.ds_conn
            if ds_conn is not None:
                ds_conn.signal_match_start(self._open_match_log(ds_conn.team_id, match))
            team = alliance_station.team
            if (
                team is not None
                and not team.has_connected
                and ds_conn is not None
                and ds_conn.robot_linked
            ):
                team.has_connected = True
                if team.id in self.teams:
                    self.teams[team.id] = dataclasses.replace(team)

        self.match_state = MatchState.START_MATCH

    def _open_match_log(self, team_id: int, match: MatchInfo) -> TeamMatchLog | None:
        if self.log_dir is None:
            return None
        try:
            return TeamMatchLog(team_id, match, base_dir=self.log_dir)
        except OSError as error:
            logger.warning("Failed to open match log for team %d: %s", team_id, error)
            return None

    def abort_match(self) -> None:
        """Kill the current match or timeout if one is underway."""
        if self.match_state in (
            MatchState.PRE_MATCH,
            MatchState.POST_MATCH,
            MatchState.POST_TIMEOUT,
        ):
            raise ArenaError("Cannot abort match when it is not in progress.")

        if self.match_state == MatchState.TIMEOUT_ACTIVE:
            # Run the timeout clock to its end and let the regular logic finish it.
            self.match_start_time = datetime.now() - timedelta(
                seconds=self.timing.timeout_duration_sec
            )
            return

        if self.match_state != MatchState.WARMUP_PERIOD:
            self._play_sound("abort")
        self.match_state = MatchState.POST_MATCH
        self._match_aborted = True
        self._blank_displays()

    def reset_match(self) -> None:
        """Return to the pre-match state unless a match is underway."""
        if self.match_state not in (MatchState.POST_MATCH, MatchState.PRE_MATCH):
            raise ArenaError("Cannot reset match while it is in progress.")
        self.match_state = MatchState.PRE_MATCH
        self._match_aborted = False
        for alliance_station in self.alliance_stations.values():
            alliance_station.bypass = False
        self.mute_match_sounds = False

    def start_timeout(self, duration_sec: int) -> None:
        """Start a timeout of the given number of seconds."""
        if self.match_state != MatchState.PRE_MATCH:
            raise ArenaError(
                "Cannot start timeout while there is a match still in progress or with results pending."
            )
        self.timing.timeout_duration_sec = duration_sec
        self._sounds = match_sounds(self.timing)
        self._sounds_played = set()
        self._notify("matchTiming", self.timing)
        self.match_state = MatchState.TIMEOUT_ACTIVE
        self.match_start_time = datetime.now()
        self.last_match_time_sec = -1.0
        self.alliance_station_display_mode = "timeout"
        self._notify_alliance_station_mode()

    def set_audience_display_mode(self, mode: str) -> None:
        """Change the audience display screen."""
        if self.audience_display_mode != mode:
            self.audience_display_mode = mode
            self._notify_audience_mode()
            if mode == "score":
                self._play_sound("match_result")

    def set_alliance_station_display_mode(self, mode: str) -> None:
        """Change the alliance station display screen."""
        if self.alliance_station_display_mode != mode:
            self.alliance_station_display_mode = mode
            self._notify_alliance_station_mode()

    def match_time_sec(self) -> float:
        """Fractional seconds since the start of the match or timeout."""
        if self.match_state in _OUT_OF_MATCH_STATES or self.match_start_time is None:
            return 0.0
        return (datetime.now() - self.match_start_time).total_seconds()

    # Main loop -------------------------------------------------------------------------------

    def update(self) -> None:
        """Run one iteration of checking timers and inputs and setting outputs."""
        auto = False
        enabled = False
        send_ds_packet = False
        match_time = self.match_time_sec()
        timing = self.timing
        state = self.match_state

        if state == MatchState.PRE_MATCH:
            auto = True
        elif state == MatchState.START_MATCH:
            self.match_start_time = datetime.now()
            self.last_match_time_sec = -1.0
            auto = True
            self.audience_display_mode = "match"
            self._notify_audience_mode()
            self.alliance_station_display_mode = "match"
            self._notify_alliance_station_mode()
            if timing.warmup_duration_sec > 0:
                self.match_state = MatchState.WARMUP_PERIOD
            else:
                self.match_state = MatchState.AUTO_PERIOD
                enabled = True
                send_ds_packet = True
        elif state == MatchState.WARMUP_PERIOD:
            auto = True
            if match_time >= timing.warmup_duration_sec:
                self.match_state = MatchState.AUTO_PERIOD
                enabled = True
                send_ds_packet = True
        elif state == MatchState.AUTO_PERIOD:
            auto = True
            enabled = True
            if match_time >= timing.duration_to_auto_end().total_seconds():
                auto = False
                send_ds_packet = True
                if timing.pause_duration_sec > 0:
                    self.match_state = MatchState.PAUSE_PERIOD
                    enabled = False
                else:
                    self.match_state = MatchState.TELEOP_PERIOD
        elif state == MatchState.PAUSE_PERIOD:
            if match_time >= timing.duration_to_teleop_start().total_seconds():
                self.match_state = MatchState.TELEOP_PERIOD
                enabled = True
                send_ds_packet = True
                self._notify_realtime_score()
        elif state == MatchState.TELEOP_PERIOD:
            enabled = True
            if match_time >= timing.duration_to_teleop_end().total_seconds():
                self.match_state = MatchState.POST_MATCH
                enabled = False
                send_ds_packet = True
                # Leave the scores on screen briefly at the end of the match.
                self._after(MATCH_END_SCORE_DWELL_SEC, self._blank_displays)
        elif state == MatchState.TIMEOUT_ACTIVE:
            if match_time >= timing.timeout_duration_sec:
                self.match_state = MatchState.POST_TIMEOUT
                self._after(MATCH_END_SCORE_DWELL_SEC, self._blank_displays)
        elif state == MatchState.POST_TIMEOUT:
            if match_time >= timing.timeout_duration_sec + POST_TIMEOUT_SEC:
                self.match_state = MatchState.PRE_MATCH

        if (
            int(match_time) != int(self.last_match_time_sec)
            or self.match_state != self._last_match_state
        ):
            self._notify("matchTime", (self.match_state, int(self.match_time_sec())))

        now = datetime.now()
        if (
            send_ds_packet
            or self.last_ds_packet_time is None
            or now - self.last_ds_packet_time >= DS_PACKET_PERIOD
        ):
            self._send_ds_packet(auto, enabled)
            self._notify("arenaStatus", self.match_state)

        self._handle_sounds(match_time)
        self._handle_field_inputs()

        self.last_match_time_sec = match_time
        self._last_match_state = self.match_state

    def _send_ds_packet(self, auto: bool, enabled: bool) -> None:
        for alliance_station in self.alliance_stations.values():
            ds_conn = alliance_station.ds_conn
            if ds_conn is None:
                continue
            ds_conn.auto = auto
            ds_conn.enabled = (
                enabled
                and not alliance_station.estop
                and not alliance_station.astop
                and not alliance_station.bypass
            )
            ds_conn.estop = alliance_station.estop
            packet = ds_conn.encode_control_packet(
                self.current_match, self.match_state, self.match_time_sec(), self.timing
            )
            if ds_conn.udp_conn is not None:
                try:
                    ds_conn.udp_conn.send(packet)
                except OSError:
                    logger.warning(
                        "Unable to send driver station packet for team %d.", ds_conn.team_id
                    )
                    continue
            ds_conn.check_link_timeout()
        self.last_ds_packet_time = datetime.now()

    def _handle_field_inputs(self) -> None:
        if self.field_estop and self.match_time_sec() > 0 and not self._match_aborted:
            self.abort_match()
        for station, alliance_station in self.alliance_stations.items():
            self.handle_estop(station, alliance_station.estop_pressed)

    def handle_estop(self, station: str, state: bool) -> None:
        """Apply the given emergency stop button state to a station."""
        alliance_station = self.alliance_stations[station]
        if state:
            if self.match_state == MatchState.AUTO_PERIOD:
                alliance_station.astop = True
            else:
                alliance_station.estop = True
        else:
            if self.match_state != MatchState.AUTO_PERIOD:
                alliance_station.astop = False
            if self.match_time_sec() == 0:
                # The e-stop is only cleared outside of a match.
                alliance_station.estop = False

    def _handle_sounds(self, match_time: float) -> None:
        if self.match_state == MatchState.PRE_MATCH:
            return
        in_timeout = self.match_state in _TIMEOUT_STATES
        for index, sound in enumerate(self._sounds):
            if sound.match_time_sec < 0 or sound.timeout != in_timeout:
                continue
            if index in self._sounds_played:
                continue
            if match_time > sound.match_time_sec and match_time - sound.match_time_sec < 1:
                self._play_sound(sound.name)
                self._sounds_played.add(index)