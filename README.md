# matchcontrol

The core logic for running matches on a robotics competition field. It is a library with no dependencies outside the standard library.

## Modules

- **`matchcontrol.timing`**
  - `MatchTiming` holds the length in seconds of the warmup, autonomous, pause and teleoperated periods, and of timeouts.
  - `duration_to_auto_end()`, `duration_to_teleop_start()` and `duration_to_teleop_end()` return `timedelta`s measured from the match start.
  - `match_sounds(timing)` returns the list of `MatchSound` cues for that timing. A cue with a negative time is played only when triggered explicitly.
- **`matchcontrol.score`**
  - `Score.summarize()` returns a `ScoreSummary` that includes the total.
  - `determine_match_status(red_summary, blue_summary)` returns a `MatchStatus`: `RED_WON`, `BLUE_WON` or `TIE`. `NOT_PLAYED` is also defined.
- **`matchcontrol.rankings`**
  - `RankingFields.add_score_summary(own_score, opponent_score)` records one played match:
    - 2 ranking points for a win and 1 for a tie.
    - Adds the tiebreaker points.
    - Stores a fresh random value that is used as the last tiebreaker.
  - `sort_rankings(rankings)` returns `Ranking`s from first place to last. It compares per-match averages of ranking, auto, endgame and teleop points, then the random value. The same ordering is available as `compare_rankings(a, b)`.
- **`matchcontrol.states`**
  - The `MatchState` progression.
  - The `MatchInfo` match record, with `allows_substitution()`, `capitalized_type()` and `is_complete()`.
- **`matchcontrol.display`**
  - `display_from_url(path, query)` parses a display's websocket path and query parameters into a `DisplayConfiguration`. It raises `ValueError` when the ID or type is missing.
  - `Display.to_url()` builds the display's URL, with the parameters sorted.
  - `DisplayRegistry` tracks displays as they connect and disconnect:
    - `next_display_id()`
    - `register()`
    - `update()`, which raises `KeyError` for an unknown display
    - `mark_disconnected()`
    - `purge_disconnected()`, which drops unnamed displays that have been idle for 30 minutes.
- **`matchcontrol.event_status`**
  - `EventStatus.update_cycle_time()` records the time between match starts.
  - `format_cycle_time(seconds)` formats a time as `M:SS` or `H:MM:SS`.
  - `describe_lateness(minutes_late)` produces the "running early/late/on schedule" message.
  - `early_late_message(current_match, matches, match_state)` works out how late the schedule is running.
- **`matchcontrol.driver_station`**
  - `DriverStationConnection` holds a driver station's link state. It does the following:
    - encodes the 22-byte control packet
    - decodes status packets and UDP status datagrams
    - applies the one-second link timeout.
  - `parse_udp_team_id`, `parse_initial_packet`, `assignment_packet` and `game_data_packet` read and build the other packets.
- **`matchcontrol.team_match_log`**
  - `TeamMatchLog` writes received driver station packets to a CSV file under `static/logs` in a chosen base directory.
- **`matchcontrol.arena`**
  - `Arena` runs the match state machine. Teams (`arena.teams`) and scheduled matches (`arena.matches`) are held in memory. With it you can:
    - load matches (`load_match`, `load_test_match`, `load_next_match`)
    - assign and substitute teams
    - start, abort and reset matches
    - start timeouts
    - handle emergency stops.
  - Call `Arena.update()` on each loop iteration.
  - An operation that is not allowed in the current state raises `ArenaError`.
  - Updates are passed to an optional `notify(topic, message)` callback.

## Example

```python
from matchcontrol.score import Score, determine_match_status

red = Score(auto_points=45, teleop_points=80, endgame_points=30).summarize()
blue = Score(auto_points=15, teleop_points=40, endgame_points=25).summarize()
print(red.score, blue.score, determine_match_status(red, blue))
```

```python
from matchcontrol.arena import Arena

arena = Arena(notify=lambda topic, message: print(topic))
for station in arena.alliance_stations.values():
    station.bypass = True
arena.start_match()
arena.update()
print(arena.match_state)
```

## What it does not do

The package holds the field's logic only. The following are left to the program that uses it:

- **Network I/O.** It opens no sockets: there are no TCP or UDP listeners for driver stations, and no network equipment is configured. The caller sends the packets that `DriverStationConnection` builds.
- **Servers and interfaces.** It has no web server, display pages or command-line program.
- **Storage.** It keeps no database; teams and matches live only in the `Arena` object.
- **Playoffs.** It builds no playoff brackets.

## Installing and testing

```
pip install .
pip install ".[test]"
pytest
```