"""CSV logs of the packets received from a team's driver station during a match."""

from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path
from typing import Protocol

from .states import MatchInfo

LOGS_DIR = Path("static") / "logs"

HEADER = (
    "matchTimeSec,packetType,teamId,allianceStation,dsLinked,radioLinked,robotLinked,auto,enabled,"
    "emergencyStop,batteryVoltage,missedPacketCount,dsRobotTripTimeMs"
)


class DriverStationStatus(Protocol):
    """The connection fields recorded for each packet."""

    team_id: int
    alliance_station: str
    ds_linked: bool
    radio_linked: bool
    robot_linked: bool
    auto: bool
    enabled: bool
    estop: bool
    battery_voltage: float
    missed_packet_count: int
    ds_robot_trip_time_ms: int


def _flag(value: bool) -> str:
    return "true" if value else "false"


class TeamMatchLog:
    """A CSV file holding one team's driver station packets for one match."""

    def __init__(
        self,
        team_id: int,
        match: MatchInfo,
        base_dir: str | os.PathLike[str] = ".",
        now: datetime | None = None,
    ) -> None:
        directory = Path(base_dir) / LOGS_DIR
        directory.mkdir(parents=True, exist_ok=True)
        stamp = (now or datetime.now()).strftime("%Y%m%d%H%M%S")
        self.path = directory / (
            f"{stamp}_{match.capitalized_type()}_Match_{match.display_name}_{team_id}.csv"
        )
        self._file = self.path.open("w", encoding="utf-8", newline="")
        self._write(HEADER)

    def _write(self, line: str) -> None:
        self._file.write(line + "\n")
        self._file.flush()

    def log_ds_packet(
        self, match_time_sec: float, packet_type: int, ds_conn: DriverStationStatus
    ) -> None:
        """Append a line describing a packet received from the driver station."""
        fields = [
            f"{match_time_sec:f}",
            str(packet_type),
            str(ds_conn.team_id),
            ds_conn.alliance_station,
            _flag(ds_conn.ds_linked),
            _flag(ds_conn.radio_linked),
            _flag(ds_conn.robot_linked),
            _flag(ds_conn.auto),
            _flag(ds_conn.enabled),
            _flag(ds_conn.estop),
            f"{ds_conn.battery_voltage:f}",
            str(ds_conn.missed_packet_count),
            str(ds_conn.ds_robot_trip_time_ms),
        ]
        self._write(",".join(fields))

    def close(self) -> None:
        """Close the log file."""
        self._file.close()

    @property
    def closed(self) -> bool:
        """Whether the log file has been closed."""
        return self._file.closed

    def __enter__(self) -> TeamMatchLog:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()