"""State of a team's driver station connection and the packets exchanged with it."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Protocol

from .states import MatchInfo, MatchState
from .timing import MatchTiming

DRIVER_STATION_TCP_LISTEN_PORT = 1750
DRIVER_STATION_UDP_SEND_PORT = 1121
DRIVER_STATION_UDP_RECEIVE_PORT = 1160
DRIVER_STATION_TCP_LINK_TIMEOUT = timedelta(seconds=5)
DRIVER_STATION_UDP_LINK_TIMEOUT = timedelta(seconds=1)
MAX_TCP_PACKET_BYTES = 4096

CONTROL_PACKET_LENGTH = 22
STATUS_PACKET_LENGTH = 36

TCP_PACKET_TYPE_KEEPALIVE = 28
TCP_PACKET_TYPE_STATUS = 22
TCP_PACKET_TYPE_INITIAL = 24
TCP_PACKET_TYPE_ASSIGNMENT = 25
TCP_PACKET_TYPE_GAME_DATA = 28

ALLIANCE_STATION_POSITIONS = {"R1": 0, "R2": 1, "R3": 2, "B1": 3, "B2": 4, "B3": 5}

_MATCH_TYPE_CODES = {"practice": 1, "qualification": 2, "elimination": 3}


class _Closeable(Protocol):
    def close(self) -> None: ...


def _int_or_zero(text: str) -> int:
    try:
        return int(text)
    except ValueError:
        return 0


@dataclass
class DriverStationConnection:
    """Link and control state of one team's driver station."""

    team_id: int
    alliance_station: str = ""
    auto: bool = False
    enabled: bool = False
    estop: bool = False
    ds_linked: bool = False
    radio_linked: bool = False
    robot_linked: bool = False
    battery_voltage: float = 0.0
    ds_robot_trip_time_ms: int = 0
    missed_packet_count: int = 0
    seconds_since_last_robot_link: float = 0.0
    wrong_station: str = ""
    packet_count: int = 0
    missed_packet_offset: int = 0
    last_packet_time: datetime | None = None
    last_robot_linked_time: datetime | None = None
    tcp_conn: Any = field(default=None, repr=False, compare=False)
    udp_conn: Any = field(default=None, repr=False, compare=False)
    log: Any = field(default=None, repr=False, compare=False)

    def encode_control_packet(
        self,
        match: MatchInfo,
        match_state: MatchState,
        match_time_sec: float,
        timing: MatchTiming,
        now: datetime | None = None,
    ) -> bytes:
        """Serialize the control information into a packet and advance the packet count."""
        now = now or datetime.now()
        packet = bytearray(CONTROL_PACKET_LENGTH)

        packet[0] = (self.packet_count >> 8) & 0xFF
        packet[1] = self.packet_count & 0xFF
        packet[2] = 0  # Protocol version.

        status = 0
        if self.auto:
            status |= 0x02
        if self.enabled:
            status |= 0x04
        if self.estop:
            status |= 0x80
        packet[3] = status
        packet[4] = 0
        packet[5] = ALLIANCE_STATION_POSITIONS.get(self.alliance_station, 0)
        packet[6] = _MATCH_TYPE_CODES.get(match.type, 0)

        if match.type in ("practice", "qualification"):
            match_number = _int_or_zero(match.display_name)
        elif match.type == "elimination":
            # E.g. quarter-final 3, match 1 is numbered 431.
            match_number = match.elim_round * 100 + match.elim_group * 10 + match.elim_instance
        else:
            match_number = 1
        packet[7] = (match_number >> 8) & 0xFF
        packet[8] = match_number & 0xFF
        packet[9] = 1  # Match repeat number.

        micros = now.microsecond
        packet[10] = (micros >> 24) & 0xFF
        packet[11] = (micros >> 16) & 0xFF
        packet[12] = (micros >> 8) & 0xFF
        packet[13] = micros & 0xFF
        packet[14] = now.second
        packet[15] = now.minute
        packet[16] = now.hour
        packet[17] = now.day
        packet[18] = now.month
        packet[19] = (now.year - 1900) & 0xFF

        elapsed = int(match_time_sec)
        if match_state in (
            MatchState.PRE_MATCH,
            MatchState.TIMEOUT_ACTIVE,
            MatchState.POST_TIMEOUT,
        ):
            remaining = timing.auto_duration_sec
        elif match_state in (MatchState.START_MATCH, MatchState.AUTO_PERIOD):
            remaining = timing.auto_duration_sec - elapsed
        elif match_state == MatchState.PAUSE_PERIOD:
            remaining = timing.teleop_duration_sec
        elif match_state == MatchState.TELEOP_PERIOD:
            remaining = (
                timing.auto_duration_sec
                + timing.teleop_duration_sec
                + timing.pause_duration_sec
                - elapsed
            )
        else:
            remaining = 0
        packet[20] = (remaining >> 8) & 0xFF
        packet[21] = remaining & 0xFF

        self.packet_count += 1
        return bytes(packet)

    def decode_status_packet(self, data: bytes) -> None:
        """Update trip time and missed packet count from a robot status packet."""
        if len(data) < 3:
            raise ValueError("Status packet is too short.")
        self.ds_robot_trip_time_ms = data[1] // 2
        self.missed_packet_count = data[2] - self.missed_packet_offset

    def apply_udp_status(self, data: bytes, now: datetime | None = None) -> None:
        """Update link state and battery voltage from a UDP status datagram."""
        if len(data) < 8:
            raise ValueError("UDP status packet is too short.")
        now = now or datetime.now()
        self.ds_linked = True
        self.last_packet_time = now
        self.radio_linked = bool(data[3] & 0x10)
        self.robot_linked = bool(data[3] & 0x20)
        if self.robot_linked:
            self.last_robot_linked_time = now
            # Stored as volts * 256.
            self.battery_voltage = data[6] + data[7] / 256

    def check_link_timeout(self, now: datetime | None = None) -> None:
        """Drop the link state if no UDP packet has arrived recently."""
        now = now or datetime.now()
        if (
            self.last_packet_time is None
            or now - self.last_packet_time > DRIVER_STATION_UDP_LINK_TIMEOUT
        ):
            self.ds_linked = False
            self.radio_linked = False
            self.robot_linked = False
            self.battery_voltage = 0.0
        if self.last_robot_linked_time is None:
            self.seconds_since_last_robot_link = math.inf
        else:
            self.seconds_since_last_robot_link = (
                now - self.last_robot_linked_time
            ).total_seconds()

    def signal_match_start(self, log: Any) -> None:
        """Zero the missed packet count and begin logging to the given log."""
        self.missed_packet_offset = self.missed_packet_count
        self.log = log

    def close(self) -> None:
        """Close the log and any open connections."""
        for resource in (self.log, self.udp_conn, self.tcp_conn):
            if resource is not None:
                resource.close()


def parse_udp_team_id(data: bytes) -> int:
    """Return the team number carried in a UDP status datagram."""
    if len(data) < 6:
        raise ValueError("UDP status packet is too short.")
    return (data[4] << 8) + data[5]


def parse_initial_packet(packet: bytes) -> int:
    """Validate a driver station's initial TCP packet and return its team number."""
    if len(packet) < 5 or not (
        packet[0] == 0 and packet[1] == 3 and packet[2] == TCP_PACKET_TYPE_INITIAL
    ):
        raise ValueError(f"Invalid initial packet received: {list(packet)}")
    return (packet[3] << 8) + packet[4]


def assignment_packet(station: str, wrong_station: str | bool = "") -> bytes:
    """Build the packet telling a driver station its assigned station and whether it is misplaced."""
    if station not in ALLIANCE_STATION_POSITIONS:
        raise ValueError(f"Invalid alliance station '{station}'.")
    return bytes(
        [
            0,
            3,
            TCP_PACKET_TYPE_ASSIGNMENT,
            ALLIANCE_STATION_POSITIONS[station],
            1 if wrong_station else 0,
        ]
    )


def game_data_packet(game_data: str) -> bytes:
    """Build the TCP packet carrying the given game data."""
    data = game_data.encode()
    size = len(data)
    return bytes([0, (size + 2) & 0xFF, TCP_PACKET_TYPE_GAME_DATA, size & 0xFF]) + data