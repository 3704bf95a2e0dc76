"""Panel identifier codec.

Fixed-position grammar (input is trimmed and upper-cased first):

  CRS  YY  F  B  PT      #####
  │    │   │  │  │       └─ sequence, 5 digits, never 00000
  │    │   │  │  └─ panel type: 36 | 40 | 60 | 72 | 144
  │    │   │  └─ backsheet: T (transparent) | W (white) | B (black)
  │    │   └─ frame: W (silver) | B (black)
  │    └─ 2-digit year within [min_year, current_yy + lookahead]
  └─ company tag

Two-digit panel types give a 14-character code, type 144 gives 15.

Line routing is derived here and nowhere else:
  36 / 40 / 60 / 72 → line A
  144               → line B
"""

from dataclasses import dataclass
from datetime import date

from app.config import settings
from app.middleware.exceptions import MalformedIdentifier

LINE_A = "A"
LINE_B = "B"

PANEL_TYPE_LINES = {36: LINE_A, 40: LINE_A, 60: LINE_A, 72: LINE_A, 144: LINE_B}
PANEL_TYPES = tuple(PANEL_TYPE_LINES)

FRAME_TAGS = {"W": "silver", "B": "black"}
BACKSHEET_TAGS = {"T": "transparent", "W": "white", "B": "black"}

_FRAME_CODES = {name: tag for tag, name in FRAME_TAGS.items()}
_BACKSHEET_CODES = {name: tag for tag, name in BACKSHEET_TAGS.items()}

SEQUENCE_DIGITS = 5
CODE_LENGTHS = (14, 15)


@dataclass(frozen=True)
class Identifier:
    """Structured, immutable form of a panel code."""
    company_tag: str
    year: int            # two-digit year, e.g. 25
    frame_type: str      # "silver" | "black"
    backsheet_type: str  # "transparent" | "white" | "black"
    panel_type: int
    sequence: int

    @property
    def line(self) -> str:
        return line_for(self.panel_type)

    @property
    def code(self) -> str:
        return encode_identifier(self)


def line_for(panel_type: int) -> str:
    """Production line for a panel type."""
    try:
        return PANEL_TYPE_LINES[int(panel_type)]
    except (KeyError, TypeError, ValueError):
        raise MalformedIdentifier(
            "panel_type",
            f"Panel type must be one of {', '.join(str(t) for t in PANEL_TYPES)}, "
            f"got {panel_type!r}",
        )


def year_window(today: date | None = None) -> tuple[int, int]:
    current_yy = (today or date.today()).year % 100
    return settings.identifier_min_year, current_yy + settings.identifier_year_lookahead


def decode_identifier(code: str, today: date | None = None) -> Identifier:
    """Parse a panel code, naming the first field that fails the grammar."""
    if not isinstance(code, str) or not code.strip():
        raise MalformedIdentifier("input", "Identifier code is required")

    code = code.strip().upper()

    if len(code) not in CODE_LENGTHS:
        raise MalformedIdentifier(
            "length",
            f"Identifier must be {CODE_LENGTHS[0]} or {CODE_LENGTHS[1]} characters, "
            f"got {len(code)}",
        )

    tag = settings.identifier_company_tag
    if code[:len(tag)] != tag:
        raise MalformedIdentifier(
            "company_tag", f"Identifier must start with {tag!r}, got {code[:len(tag)]!r}"
        )
    pos = len(tag)

    year_str = code[pos:pos + 2]
    lo, hi = year_window(today)
    if not year_str.isdigit() or not lo <= int(year_str) <= hi:
        raise MalformedIdentifier(
            "year", f"Year must be two digits between {lo:02d} and {hi:02d}, got {year_str!r}"
        )
    pos += 2

    frame = code[pos]
    if frame not in FRAME_TAGS:
        raise MalformedIdentifier(
            "frame_type", f"Frame type must be one of {sorted(FRAME_TAGS)}, got {frame!r}"
        )
    pos += 1

    backsheet = code[pos]
    if backsheet not in BACKSHEET_TAGS:
        raise MalformedIdentifier(
            "backsheet_type",
            f"Backsheet type must be one of {sorted(BACKSHEET_TAGS)}, got {backsheet!r}",
        )
    pos += 1

    type_str = code[pos:-SEQUENCE_DIGITS]
    if not type_str.isdigit() or int(type_str) not in PANEL_TYPE_LINES or type_str != str(int(type_str)):
        raise MalformedIdentifier(
            "panel_type",
            f"Panel type must be one of {', '.join(str(t) for t in PANEL_TYPES)}, "
            f"got {type_str!r}",
        )

    seq_str = code[-SEQUENCE_DIGITS:]
    if not seq_str.isdigit() or int(seq_str) == 0:
        raise MalformedIdentifier(
            "sequence", f"Sequence must be five digits and not all zero, got {seq_str!r}"
        )

    return Identifier(
        company_tag=tag,
        year=int(year_str),
        frame_type=FRAME_TAGS[frame],
        backsheet_type=BACKSHEET_TAGS[backsheet],
        panel_type=int(type_str),
        sequence=int(seq_str),
    )


def encode_identifier(identifier: Identifier) -> str:
    """Inverse of decode_identifier."""
    return (
        f"{identifier.company_tag}"
        f"{identifier.year:02d}"
        f"{_FRAME_CODES[identifier.frame_type]}"
        f"{_BACKSHEET_CODES[identifier.backsheet_type]}"
        f"{identifier.panel_type}"
        f"{identifier.sequence:0{SEQUENCE_DIGITS}d}"
    )


def generate_identifier(
    panel_type: int,
    sequence: int,
    year: int | None = None,
    frame_type: str = "silver",
    backsheet_type: str = "white",
) -> str:
    """Build a valid code, e.g. for label printing or test fixtures.

    The result is run back through the decoder so an out-of-range year or
    sequence is reported the same way a scanned code would be.
    """
    frame_type = FRAME_TAGS.get(frame_type, frame_type)
    backsheet_type = BACKSHEET_TAGS.get(backsheet_type, backsheet_type)
    if frame_type not in _FRAME_CODES:
        raise MalformedIdentifier("frame_type", f"Unknown frame type {frame_type!r}")
    if backsheet_type not in _BACKSHEET_CODES:
        raise MalformedIdentifier("backsheet_type", f"Unknown backsheet type {backsheet_type!r}")
    line_for(panel_type)
    if not 0 < sequence < 10 ** SEQUENCE_DIGITS:
        raise MalformedIdentifier("sequence", f"Sequence must be 1..99999, got {sequence}")

    code = encode_identifier(Identifier(
        company_tag=settings.identifier_company_tag,
        year=date.today().year % 100 if year is None else year % 100,
        frame_type=frame_type,
        backsheet_type=backsheet_type,
        panel_type=int(panel_type),
        sequence=sequence,
    ))
    decode_identifier(code)
    return code
