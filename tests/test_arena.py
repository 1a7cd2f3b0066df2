from datetime import datetime, timedelta

import pytest

from matchcontrol.arena import Arena, ArenaError, Team
from matchcontrol.driver_station import DriverStationConnection
from matchcontrol.score import MatchStatus
from matchcontrol.states import MatchInfo, MatchState
from matchcontrol.timing import MatchTiming

ALL_STATIONS = ("R1", "R2", "R3", "B1", "B2", "B3")


@pytest.fixture
def arena():
    return Arena(timing=MatchTiming(warmup_duration_sec=3, pause_duration_sec=2))


def ago(seconds):
    return datetime.now() - timedelta(seconds=seconds)


def force_packet(arena):
    arena.last_ds_packet_time = datetime.now() - timedelta(milliseconds=300)


def bypass(arena, *stations):
    for station in stations:
        arena.alliance_stations[station].bypass = True


def add_teams(arena, *team_ids):
    for team_id in team_ids:
        arena.teams[team_id] = Team(id=team_id)


class FakeUdp:
    def __init__(self):
        self.sent = []
        self.closed = False

    def send(self, data):
        self.sent.append(data)

    def close(self):
        self.closed = True


def test_assign_team(arena):
    add_teams(arena, 254, 1114)

    arena.assign_team(254, "B1")
    assert arena.alliance_stations["B1"].team == Team(id=254)
    dummy = DriverStationConnection(team_id=254)
    arena.alliance_stations["B1"].ds_conn = dummy

    arena.assign_team(254, "B1")
    assert arena.alliance_stations["B1"].team == Team(id=254)
    assert arena.alliance_stations["B1"].ds_conn is dummy

    arena.assign_team(1114, "B1")
    assert arena.alliance_stations["B1"].team == Team(id=1114)
    assert arena.alliance_stations["B1"].ds_conn is None

    arena.assign_team(0, "R2")
    assert arena.alliance_stations["R2"].team is None
    assert arena.alliance_stations["R2"].ds_conn is None

    with pytest.raises(ArenaError, match="Invalid alliance station"):
        arena.assign_team(254, "R4")


def test_assign_unknown_team_is_anonymous(arena):
    arena.assign_team(9999, "R3")
    assert arena.alliance_stations["R3"].team == Team(id=9999)
    assert 9999 not in arena.teams


def test_check_can_start_match(arena):
    with pytest.raises(ArenaError, match="until all robots are connected or bypassed"):
        arena.check_can_start_match()
    bypass(arena, "R1", "R2", "R3", "B1", "B2")
    with pytest.raises(ArenaError, match="until all robots are connected or bypassed"):
        arena.check_can_start_match()
    bypass(arena, "B3")
    assert arena.check_can_start_match() is None

    arena.field_estop = True
    with pytest.raises(ArenaError, match="field emergency stop is active"):
        arena.check_can_start_match()
    arena.field_estop = False
    assert arena.check_can_start_match() is None


def test_match_flow(arena):
    add_teams(arena, 254)
    arena.assign_team(254, "B3")
    arena.alliance_stations["B3"].ds_conn = DriverStationConnection(team_id=254)
    ds = arena.alliance_stations["B3"].ds_conn
    timing = arena.timing

    assert arena.match_state == MatchState.PRE_MATCH
    force_packet(arena)
    arena.update()
    assert ds.auto is True
    assert ds.enabled is False
    last_count = ds.packet_count
    arena.last_ds_packet_time -= timedelta(milliseconds=10)
    arena.update()
    assert ds.packet_count == last_count
    arena.last_ds_packet_time -= timedelta(milliseconds=300)
    arena.update()
    assert ds.packet_count == last_count + 1

    bypass(arena, "R1", "R2", "R3", "B1", "B2")
    ds.robot_linked = True
    arena.start_match()
    arena.update()
    assert (arena.match_state, ds.auto, ds.enabled) == (MatchState.WARMUP_PERIOD, True, False)
    arena.update()
    assert (arena.match_state, ds.auto, ds.enabled) == (MatchState.WARMUP_PERIOD, True, False)
    arena.match_start_time = ago(timing.warmup_duration_sec)
    arena.update()
    assert (arena.match_state, ds.auto, ds.enabled) == (MatchState.AUTO_PERIOD, True, True)
    arena.update()
    assert (arena.match_state, ds.auto, ds.enabled) == (MatchState.AUTO_PERIOD, True, True)
    arena.match_start_time = ago(timing.warmup_duration_sec + timing.auto_duration_sec)
    arena.update()
    assert (arena.match_state, ds.auto, ds.enabled) == (MatchState.PAUSE_PERIOD, False, False)
    arena.update()
    assert (arena.match_state, ds.auto, ds.enabled) == (MatchState.PAUSE_PERIOD, False, False)
    arena.match_start_time = ago(
        timing.warmup_duration_sec + timing.auto_duration_sec + timing.pause_duration_sec
    )
    arena.update()
    assert (arena.match_state, ds.auto, ds.enabled) == (MatchState.TELEOP_PERIOD, False, True)
    arena.update()
    assert (arena.match_state, ds.auto, ds.enabled) == (MatchState.TELEOP_PERIOD, False, True)

    station = arena.alliance_stations["B3"]
    station.estop = True
    force_packet(arena)
    arena.update()
    assert (arena.match_state, ds.auto, ds.enabled) == (MatchState.TELEOP_PERIOD, False, False)
    station.bypass = True
    force_packet(arena)
    arena.update()
    assert (arena.match_state, ds.auto, ds.enabled) == (MatchState.TELEOP_PERIOD, False, False)
    station.estop = False
    force_packet(arena)
    arena.update()
    assert (arena.match_state, ds.auto, ds.enabled) == (MatchState.TELEOP_PERIOD, False, False)
    station.bypass = False
    force_packet(arena)
    arena.update()
    assert (arena.match_state, ds.auto, ds.enabled) == (MatchState.TELEOP_PERIOD, False, True)

    arena.match_start_time = ago(
        timing.warmup_duration_sec
        + timing.auto_duration_sec
        + timing.pause_duration_sec
        + timing.teleop_duration_sec
    )
    arena.update()
    assert (arena.match_state, ds.auto, ds.enabled) == (MatchState.POST_MATCH, False, False)
    arena.update()
    assert (arena.match_state, ds.auto, ds.enabled) == (MatchState.POST_MATCH, False, False)

    bypass(arena, "R1")
    arena.reset_match()
    force_packet(arena)
    arena.update()
    assert (arena.match_state, ds.auto, ds.enabled) == (MatchState.PRE_MATCH, True, False)
    assert arena.alliance_stations["R1"].bypass is False


def test_state_enforcement_in_pre_match(arena):
    bypass(arena, *ALL_STATIONS)
    arena.load_match(MatchInfo())
    with pytest.raises(ArenaError, match="Cannot abort match when"):
        arena.abort_match()
    arena.start_match()
    assert arena.match_state == MatchState.START_MATCH


@pytest.mark.parametrize(
    "state",
    [
        MatchState.START_MATCH,
        MatchState.AUTO_PERIOD,
        MatchState.PAUSE_PERIOD,
        MatchState.TELEOP_PERIOD,
    ],
)
def test_state_enforcement_during_match(arena, state):
    bypass(arena, *ALL_STATIONS)
    arena.match_state = state
    with pytest.raises(ArenaError, match="Cannot load match while"):
        arena.load_match(MatchInfo())
    with pytest.raises(ArenaError, match="Cannot start match while"):
        arena.start_match()
    with pytest.raises(ArenaError, match="Cannot reset match while"):
        arena.reset_match()


def test_state_enforcement_in_post_match(arena):
    bypass(arena, *ALL_STATIONS)
    arena.match_state = MatchState.POST_MATCH
    with pytest.raises(ArenaError, match="Cannot load match while"):
        arena.load_match(MatchInfo())
    with pytest.raises(ArenaError, match="Cannot start match while"):
        arena.start_match()
    with pytest.raises(ArenaError, match="Cannot abort match when"):
        arena.abort_match()

    arena.reset_match()
    assert arena.match_state == MatchState.PRE_MATCH
    arena.reset_match()
    arena.load_match(MatchInfo(id=7))
    assert arena.current_match.id == 7


def test_match_start_robot_link_enforcement(arena):
    add_teams(arena, 101, 102, 103, 104, 105, 106)
    match = MatchInfo(id=1, red1=101, red2=102, red3=103, blue1=104, blue2=105, blue3=106)
    arena.matches.append(match)

    arena.load_match(match)
    for station, team_id in zip(ALL_STATIONS, range(101, 107)):
        arena.alliance_stations[station].ds_conn = DriverStationConnection(
            team_id=team_id, robot_linked=True
        )
    arena.start_match()
    assert arena.match_state == MatchState.START_MATCH
    arena.match_state = MatchState.PRE_MATCH

    r1 = arena.alliance_stations["R1"]
    r1.estop = True
    with pytest.raises(ArenaError, match="while an emergency stop is active"):
        arena.start_match()
    r1.estop = False
    r1.ds_conn.robot_linked = False
    with pytest.raises(ArenaError, match="until all robots are connected or bypassed"):
        arena.start_match()
    r1.bypass = True
    arena.start_match()
    assert arena.match_state == MatchState.START_MATCH
    r1.bypass = False
    arena.match_state = MatchState.PRE_MATCH

    arena.assign_team(0, "R1")
    with pytest.raises(ArenaError, match="until all robots are connected or bypassed"):
        arena.start_match()
    r1.bypass = True
    arena.start_match()
    assert arena.match_state == MatchState.START_MATCH
    arena.match_state = MatchState.PRE_MATCH

    arena.load_match(MatchInfo())
    with pytest.raises(ArenaError, match="until all robots are connected or bypassed"):
        arena.start_match()
    bypass(arena, *ALL_STATIONS)
    arena.alliance_stations["B3"].estop = True
    with pytest.raises(ArenaError, match="while an emergency stop is active"):
        arena.start_match()
    arena.alliance_stations["B3"].estop = False
    arena.start_match()
    assert arena.match_state == MatchState.START_MATCH


def test_load_next_match(arena):
    add_teams(arena, 1114)
    practice1 = MatchInfo(id=1, type="practice", display_name="1")
    practice2 = MatchInfo(id=2, type="practice", display_name="2", status=MatchStatus.RED_WON)
    practice3 = MatchInfo(id=3, type="practice", display_name="3")
    qualification1 = MatchInfo(
        id=4, type="qualification", display_name="1", status=MatchStatus.BLUE_WON
    )
    qualification2 = MatchInfo(id=5, type="qualification", display_name="2")
    arena.matches.extend([practice1, practice2, practice3, qualification1, qualification2])

    assert arena.current_match.id == 0
    arena.substitute_team(1114, "R1")
    arena.current_match.status = MatchStatus.TIE
    arena.load_next_match()
    assert arena.current_match.id == 0
    assert arena.current_match.red1 == 0
    assert arena.current_match.is_complete() is False

    arena.load_match(practice2)
    arena.load_next_match()
    assert arena.current_match.id == practice1.id
    practice1.status = MatchStatus.RED_WON
    arena.load_next_match()
    assert arena.current_match.id == practice3.id
    practice3.status = MatchStatus.BLUE_WON
    arena.load_next_match()
    assert arena.current_match.id == 0
    assert arena.current_match.type == "test"

    arena.load_match(qualification1)
    arena.load_next_match()
    assert arena.current_match.id == qualification2.id


def test_substitute_team(arena):
    add_teams(arena, 101, 102, 103, 104, 105, 106, 107)

    arena.substitute_team(101, "B1")
    assert arena.current_match.blue1 == 101
    assert arena.alliance_stations["B1"].team.id == 101
    with pytest.raises(ArenaError, match="Invalid alliance station"):
        arena.assign_team(104, "R4")

    teams = dict(red1=101, red2=102, red3=103, blue1=104, blue2=105, blue3=106)
    match = MatchInfo(id=1, type="practice", **teams)
    arena.matches.append(match)
    arena.load_match(match)
    arena.substitute_team(107, "R1")
    assert arena.current_match.red1 == 107
    assert arena.alliance_stations["R1"].team.id == 107
    assert arena.matches[0].red1 == 107

    match = MatchInfo(id=2, type="qualification", **teams)
    arena.matches.append(match)
    arena.load_match(match)
    with pytest.raises(ArenaError, match="Can't substitute teams for qualification matches."):
        arena.substitute_team(107, "R1")

    match = MatchInfo(id=3, type="elimination", **teams)
    arena.matches.append(match)
    arena.load_match(match)
    arena.substitute_team(107, "R1")
    assert arena.current_match.red1 == 107


def test_astop(arena):
    add_teams(arena, 254, 148)
    arena.assign_team(254, "R1")
    arena.alliance_stations["R1"].ds_conn = DriverStationConnection(team_id=254)
    arena.assign_team(148, "R2")
    arena.alliance_stations["R2"].ds_conn = DriverStationConnection(team_id=148)
    r1 = arena.alliance_stations["R1"]
    r2 = arena.alliance_stations["R2"]
    timing = arena.timing

    r1.ds_conn.robot_linked = True
    r2.ds_conn.robot_linked = True
    bypass(arena, "R3", "B1", "B2", "B3")
    arena.start_match()
    arena.update()
    arena.match_start_time = ago(timing.warmup_duration_sec)
    arena.update()
    assert arena.match_state == MatchState.AUTO_PERIOD
    assert r1.ds_conn.enabled is True

    arena.handle_estop("R1", True)
    arena.handle_estop("R2", False)
    assert (r1.astop, r1.estop, r2.astop, r2.estop) == (True, False, False, False)
    arena.last_ds_packet_time = None
    arena.update()
    assert r1.ds_conn.enabled is False
    assert r2.ds_conn.enabled is True

    arena.handle_estop("R1", True)
    arena.handle_estop("R2", True)
    assert (r1.astop, r1.estop, r2.astop, r2.estop) == (True, False, True, False)
    arena.last_ds_packet_time = None
    arena.update()
    assert r1.ds_conn.enabled is False
    assert r2.ds_conn.enabled is False

    arena.handle_estop("R1", False)
    arena.handle_estop("R2", True)
    assert (r1.astop, r1.estop, r2.astop, r2.estop) == (True, False, True, False)
    arena.last_ds_packet_time = None
    arena.update()
    assert r1.ds_conn.enabled is False
    assert r2.ds_conn.enabled is False

    arena.match_start_time = ago(timing.warmup_duration_sec + timing.auto_duration_sec)
    arena.update()
    assert arena.match_state == MatchState.PAUSE_PERIOD
    arena.match_start_time = ago(
        timing.warmup_duration_sec + timing.auto_duration_sec + timing.pause_duration_sec
    )
    arena.handle_estop("R1", False)
    arena.handle_estop("R2", True)
    assert (r1.astop, r1.estop, r2.astop, r2.estop) == (False, False, False, True)
    arena.last_ds_packet_time = None
    arena.update()
    assert arena.match_state == MatchState.TELEOP_PERIOD
    assert r1.ds_conn.enabled is True
    assert r2.ds_conn.enabled is False

    arena.handle_estop("R1", True)
    arena.handle_estop("R2", False)
    assert (r1.astop, r1.estop, r2.astop, r2.estop) == (False, True, False, True)
    arena.last_ds_packet_time = None
    arena.update()
    assert r1.ds_conn.enabled is False
    assert r2.ds_conn.enabled is False


def test_timeout(arena):
    assert arena.start_timeout(9) is None
    assert arena.timing.timeout_duration_sec == 9
    assert arena.match_state == MatchState.TIMEOUT_ACTIVE
    arena.match_start_time = ago(9)
    arena.update()
    assert arena.match_state == MatchState.POST_TIMEOUT
    arena.match_start_time = ago(9 + 4)
    arena.update()
    assert arena.match_state == MatchState.PRE_MATCH

    arena.start_timeout(28)
    assert arena.timing.timeout_duration_sec == 28
    assert arena.match_state == MatchState.TIMEOUT_ACTIVE
    arena.abort_match()
    arena.update()
    assert arena.match_state == MatchState.POST_TIMEOUT
    arena.match_start_time = ago(28 + 4)
    arena.update()
    assert arena.match_state == MatchState.PRE_MATCH

    bypass(arena, *ALL_STATIONS)
    arena.start_match()
    arena.update()
    with pytest.raises(ArenaError):
        arena.start_timeout(1)
    assert arena.match_state != MatchState.TIMEOUT_ACTIVE
    assert arena.timing.timeout_duration_sec == 28
    timing = arena.timing
    arena.match_start_time = ago(
        timing.warmup_duration_sec
        + timing.auto_duration_sec
        + timing.pause_duration_sec
        + timing.teleop_duration_sec
    )
    while arena.match_state != MatchState.POST_MATCH:
        arena.update()
        with pytest.raises(ArenaError):
            arena.start_timeout(1)


def test_save_team_has_connected(arena):
    add_teams(arena, 101, 102, 103, 104, 105)
    arena.teams[106] = Team(id=106, city="San Jose", has_connected=True)
    match = MatchInfo(id=1, red1=101, red2=102, red3=103, blue1=104, blue2=105, blue3=106)
    arena.matches.append(match)
    arena.load_match(match)
    stations = arena.alliance_stations
    stations["R1"].ds_conn = DriverStationConnection(team_id=101)
    stations["R1"].bypass = True
    stations["R2"].ds_conn = DriverStationConnection(team_id=102, robot_linked=True)
    stations["R3"].ds_conn = DriverStationConnection(team_id=103)
    stations["R3"].bypass = True
    stations["B1"].ds_conn = DriverStationConnection(team_id=104)
    stations["B1"].bypass = True
    stations["B2"].ds_conn = DriverStationConnection(team_id=105, robot_linked=True)
    stations["B3"].ds_conn = DriverStationConnection(team_id=106, robot_linked=True)
    stations["B3"].team.city = "Sand Hosay"
    arena.start_match()

    teams = sorted(arena.teams.values(), key=lambda team: team.id)
    assert len(teams) == 6
    assert [team.has_connected for team in teams] == [False, True, False, False, True, True]
    assert teams[5].city == "San Jose"


def test_start_sound_and_abort_sound():
    messages = []
    arena = Arena(
        timing=MatchTiming(warmup_duration_sec=3, pause_duration_sec=2),
        notify=lambda topic, message: messages.append((topic, message)),
    )
    bypass(arena, *ALL_STATIONS)
    arena.start_match()
    arena.update()
    arena.update()
    assert ("playSound", "start") in messages

    arena.match_start_time = ago(3)
    arena.update()
    assert arena.match_state == MatchState.AUTO_PERIOD
    arena.abort_match()
    assert ("playSound", "abort") in messages
    assert arena.match_state == MatchState.POST_MATCH
    assert arena.audience_display_mode == "blank"
    assert arena.alliance_station_display_mode == "logo"


def test_abort_during_warmup_is_silent():
    messages = []
    arena = Arena(
        timing=MatchTiming(warmup_duration_sec=3),
        notify=lambda topic, message: messages.append((topic, message)),
    )
    bypass(arena, *ALL_STATIONS)
    arena.start_match()
    arena.update()
    assert arena.match_state == MatchState.WARMUP_PERIOD
    arena.abort_match()
    assert ("playSound", "abort") not in messages
    assert arena.match_state == MatchState.POST_MATCH


def test_audience_display_mode_notifications():
    messages = []
    arena = Arena(notify=lambda topic, message: messages.append((topic, message)))
    messages.clear()
    arena.set_audience_display_mode("score")
    assert messages == [("audienceDisplayMode", "score"), ("playSound", "match_result")]
    arena.set_audience_display_mode("score")
    assert len(messages) == 2

    arena.mute_match_sounds = True
    arena.set_audience_display_mode("blank")
    arena.set_audience_display_mode("score")
    assert ("playSound", "match_result") not in messages[2:]


def test_alliance_station_display_mode(arena):
    arena.set_alliance_station_display_mode("logo")
    assert arena.alliance_station_display_mode == "logo"


def test_ds_packet_written_to_udp(arena):
    udp = FakeUdp()
    arena.assign_team(254, "R3")
    arena.alliance_stations["R3"].ds_conn = DriverStationConnection(
        team_id=254, alliance_station="R3", udp_conn=udp
    )
    arena.update()
    assert len(udp.sent) == 1
    packet = udp.sent[0]
    assert len(packet) == 22
    assert packet[3] == 0x02
    assert packet[5] == 2

    arena.assign_team(0, "R3")
    assert udp.closed is True


def test_field_estop_aborts_match(arena):
    bypass(arena, *ALL_STATIONS)
    arena.start_match()
    arena.update()
    arena.match_start_time = ago(4)
    arena.update()
    assert arena.match_state == MatchState.AUTO_PERIOD
    arena.field_estop = True
    arena.update()
    assert arena.match_state == MatchState.POST_MATCH


def test_cycle_time_recorded_on_start(arena):
    bypass(arena, *ALL_STATIONS)
    arena.event_status.update_cycle_time(ago(125))
    arena.start_match()
    assert arena.event_status.cycle_time == "2:05"
    assert arena.current_match.started_at is not None
    assert arena.match_time_sec() == 0.0