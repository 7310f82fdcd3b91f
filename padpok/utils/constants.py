"""
Constants used across the match lifecycle and result engine.
"""

# Ledger points
POINTS_PER_WIN = 3
POINTS_PER_LOSS = 1

# Roster
TEAM_SLOT_SIZE = 2  # players per team slot
DEFAULT_PLAYERS_NEEDED = 4
MIN_PLAYERS_NEEDED = 2
MAX_PLAYERS_NEEDED = 2 * TEAM_SLOT_SIZE
MAX_TITLE_LENGTH = 40

# Lifecycle
CANCELLATION_WINDOW_HOURS = 24  # under-filled matches are cancelled this close to start
CANCELLATION_REASON = "insufficient players 24h before start."

# Groups
MAX_GROUP_NAME_LENGTH = 50
GROUP_MATCH_MIN_NOTICE_HOURS = 24  # group matches are scheduled at least this far ahead

# Score rules
GAMES_TO_WIN_SET = 6
MIN_SET_MARGIN = 2
TIE_BREAK_GAMES = 7
SETS_TO_WIN_MATCH = 2

# Medal time-of-day thresholds (local hour)
MORNING_BEFORE_HOUR = 9
NIGHT_FROM_HOUR = 22
