"""
Card codes and deck construction for Spiller.

A card travels through the server as a short string code: a rank followed
by a suit letter, e.g. "AS" (ace of spades) or "10H" (ten of hearts).
Hands and piles are plain lists of these codes; Card is used wherever a
code must be taken apart for matching or rule checks.

Ranks: A, 2-10, J, Q, K
Suits: C (clubs), D (diamonds), H (hearts), S (spades)
"""

import random
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Suit(Enum):
    """Card suits, valued by their code letter."""

    CLUBS = "C"
    DIAMONDS = "D"
    HEARTS = "H"
    SPADES = "S"

    @property
    def display_name(self) -> str:
        return self.name.capitalize()

    @classmethod
    def from_name(cls, name: str) -> Optional["Suit"]:
        """
        Resolve a suit from a letter or a name ("S", "spades", "Spades").

        Returns:
            The Suit, or None if the text names no suit.
        """
        text = (name or "").strip().upper()
        if not text:
            return None
        for suit in cls:
            if text == suit.value or text == suit.name or text == suit.name[:-1]:
                return suit
        return None


class Rank(Enum):
    """Card ranks, valued by their code prefix."""

    ACE = "A"
    TWO = "2"
    THREE = "3"
    FOUR = "4"
    FIVE = "5"
    SIX = "6"
    SEVEN = "7"
    EIGHT = "8"
    NINE = "9"
    TEN = "10"
    JACK = "J"
    QUEEN = "Q"
    KING = "K"


CARDS_PER_DECK = len(Rank) * len(Suit)

_RANK_BY_CODE = {rank.value: rank for rank in Rank}
_SUIT_BY_CODE = {suit.value: suit for suit in Suit}


@dataclass(frozen=True)
class Card:
    """
    A parsed card code.

    Attributes:
        rank: The card's rank.
        suit: The card's suit.
    """

    rank: Rank
    suit: Suit

    @property
    def code(self) -> str:
        """The wire code for this card, e.g. "10H"."""
        return f"{self.rank.value}{self.suit.value}"

    @classmethod
    def parse(cls, code: str) -> "Card":
        """
        Parse a card code into rank and suit.

        Args:
            code: Card code such as "AS" or "10h" (suit letter case-insensitive).

        Returns:
            The parsed Card.

        Raises:
            ValueError: If the code is not a valid card.
        """
        if not isinstance(code, str) or len(code) < 2:
            raise ValueError(f"Invalid card code: {code!r}")
        rank = _RANK_BY_CODE.get(code[:-1].upper())
        suit = _SUIT_BY_CODE.get(code[-1].upper())
        if rank is None or suit is None:
            raise ValueError(f"Invalid card code: {code!r}")
        return cls(rank, suit)

    def matches(self, other: "Card") -> bool:
        """True if the two cards share a rank or a suit."""
        return self.rank == other.rank or self.suit == other.suit

    def __str__(self) -> str:
        return self.code


def parse_card(code: str) -> Optional[Card]:
    """Parse a card code, returning None instead of raising for bad input."""
    try:
        return Card.parse(code)
    except ValueError:
        return None


def format_card(rank: Rank, suit: Suit) -> str:
    """Build the wire code for a rank and suit."""
    return f"{rank.value}{suit.value}"


def cards_match(code: str, other: str) -> bool:
    """Rank-or-suit match between two card codes. Invalid codes never match."""
    a, b = parse_card(code), parse_card(other)
    if a is None or b is None:
        return False
    return a.matches(b)


def build_pile(num_decks: int = 1) -> list[str]:
    """
    Build an unshuffled pile of num_decks standard 52-card decks.

    Args:
        num_decks: Number of decks to combine.

    Returns:
        List of card codes, num_decks * 52 long.
    """
    pile = []
    for _ in range(num_decks):
        for suit in Suit:
            for rank in Rank:
                pile.append(format_card(rank, suit))
    return pile


def shuffled(cards: list[str], rng: Optional[random.Random] = None) -> list[str]:
    """
    Return a uniformly shuffled copy of cards (Fisher-Yates).

    Args:
        cards: Card codes to shuffle. Not modified.
        rng: Optional Random instance for deterministic shuffles in tests.
    """
    result = list(cards)
    (rng or random).shuffle(result)
    return result


def new_shuffled_pile(num_decks: int = 1, rng: Optional[random.Random] = None) -> list[str]:
    """Build and shuffle a fresh num_decks pile."""
    return shuffled(build_pile(num_decks), rng)
