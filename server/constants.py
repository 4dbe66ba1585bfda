"""
House-rule vocabulary for Spiller.

This module is the single source of truth for the words, phrases and
thresholds the default rules check chat messages against, and for the
reasons printed in penalty announcements.
"""

# Sender name used for server announcements in chat
SYSTEM_SENDER = "SYSTEM"

# Turn direction values as they appear in room settings
CLOCKWISE = "cw"
COUNTER_CLOCKWISE = "ccw"
DIRECTIONS = (CLOCKWISE, COUNTER_CLOCKWISE)


# =============================================================================
# Chat obligations
# =============================================================================

BEATLES = (
    "john lennon",
    "paul mccartney",
    "george harrison",
    "ringo starr",
)
BEATLE_MAX_DISTANCE = 3

NICE_DAY_PHRASE = "have a nice day"
NICE_DAY_MAX_DISTANCE = 6

EVIL_WORD = "evil"

CURSE_WORDS = ("shit", "fuck", "bitch", "asshole")

# Consecutive same-rank plays that trigger a forced draw, and its size
THREE_IN_A_ROW_LENGTH = 3
THREE_IN_A_ROW_DRAW = 3


# =============================================================================
# Penalty reasons
# =============================================================================

PENALTY_INVALID_PLAY = "Invalid play"
PENALTY_OUT_OF_TURN_DRAW = "Drawing out of turn"
PENALTY_BEATLE = "Failure to name a Beatle"
PENALTY_NICE_DAY = "Failure to say have a nice day"
PENALTY_EVIL = "Failure to say evil phrase"
PENALTY_SPADE = "Failure to name your spade"
PENALTY_SING = "Failure to sing"
PENALTY_FLAT_NOTE = "Flat note"
PENALTY_CURSING = "Cursing"
PENALTY_BAD_SUIT_CALL = "Calling a suit without a Jack"
PENALTY_BAD_KNOCK = "Knocking out of place"
