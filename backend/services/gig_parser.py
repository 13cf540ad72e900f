"""
Gig Parser — turns recognised text from a gig-offer screenshot into
structured values: pay in USD, gig miles and a "City, ST" pickup guess.

Pay is tried two ways:
  1. Geometry — OCR engines usually split superscript cents ("$15" with a
     tiny "80" above-right) into separate regions, so the bounding boxes are
     consulted first to glue them back together.
  2. Text — an ordered list of regex tiers over the flattened text handles
     "$1,234.56", "$15 80", "$15•80", "$1580" and plain "$15".

Everything in here is a pure function of its inputs; the OCR adapter lives
in ocr_service.py.
"""
import math
import re
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Protocol, Sequence


# ── Geometry types ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class NormalizedRect:
    """Box in normalised image coordinates (0–1, origin bottom-left)."""
    min_x: float
    max_x: float
    mid_x: float
    mid_y: float
    height: float

    @classmethod
    def from_bounds(cls, min_x: float, min_y: float, max_x: float, max_y: float) -> "NormalizedRect":
        return cls(
            min_x=min_x,
            max_x=max_x,
            mid_x=(min_x + max_x) / 2,
            mid_y=(min_y + max_y) / 2,
            height=max_y - min_y,
        )

    @classmethod
    def from_pixels(cls, left: float, top: float, width: float, height: float,
                    image_width: int, image_height: int) -> "NormalizedRect":
        """Convert a top-left-origin pixel box (as Tesseract reports it)."""
        w = max(1, image_width)
        h = max(1, image_height)
        return cls.from_bounds(
            left / w,
            1.0 - (top + height) / h,
            (left + width) / w,
            1.0 - top / h,
        )

    @property
    def min_y(self) -> float:
        return self.mid_y - self.height / 2

    @property
    def max_y(self) -> float:
        return self.mid_y + self.height / 2


class RecognizedObservation(Protocol):
    """One recognised line/region. `bounding_box` maps text[start:end] to a box."""
    text: str

    def bounding_box(self, start: int, end: int) -> Optional[NormalizedRect]:
        ...


@dataclass(frozen=True)
class DollarCandidate:
    digits: str
    box: NormalizedRect


@dataclass(frozen=True)
class SmallToken:
    text: str
    box: NormalizedRect


@dataclass(frozen=True)
class Parsed:
    pay_usd: Optional[float]
    gig_miles: Optional[float]
    pickup_query: Optional[str]
    raw_text: str

    @classmethod
    def empty(cls) -> "Parsed":
        return cls(pay_usd=None, gig_miles=None, pickup_query=None, raw_text="")


# ── Patterns ──────────────────────────────────────────────────────────────────

TWO_DIGITS_RE = re.compile(r'(?<!\d)\d{2}(?!\d)')
BARE_DIGITS_RE = re.compile(r'(?<!\d)\d{1,4}(?!\d)')
DOLLAR_RE = re.compile(r'\$\s*([0-9]{1,4})')

# Text tiers, strongest first
GROUPED_PRICE_RE = re.compile(r'\$([0-9]{1,3}(?:,[0-9]{3})*(?:\.[0-9]{1,2})?)')
# separator: space, NBSP, narrow NBSP, thin space, period, dot leader,
# hyphenation point, middle dot, bullet
CENTS_SEPARATORS = r"[ \u00A0\u202F\u2009.\u2024\u2027\u00B7\u2022]"
SEPARATED_CENTS_RE = re.compile(r"\$([0-9]{1,6})" + CENTS_SEPARATORS + r"([0-9]{2})")
# Follows a grouped match that is really "$15 80" or "$1580"
CENTS_FOLLOW_RE = re.compile(r"[0-9]|" + CENTS_SEPARATORS + r"[0-9]{2}")
RUN_ON_CENTS_RE = re.compile(r'\$([0-9]{3,})')
WHOLE_DOLLARS_RE = re.compile(r'\$([0-9]{1,6})\b')

MILES_RE = re.compile(r'(\d+(?:\.\d+)?)\s*mi\b')
PICKUP_RE = re.compile(r"([A-Za-z .'-]+,\s?[A-Z]{2})")

# Superscript cents window (normalised units)
CENTS_DX_MIN, CENTS_DX_MAX = -0.01, 0.10
CENTS_DY_MIN, CENTS_DY_MAX = -0.05, 0.25
CENTS_MAX_SIZE_RATIO = 0.85


# ── Small regex helpers ───────────────────────────────────────────────────────

def first_match(text: str, pattern: "re.Pattern[str]") -> Optional[str]:
    """First capture group of the first match, stripped."""
    m = pattern.search(text)
    if not m or m.lastindex is None:
        return None
    return m.group(1).strip()


def _to_float(s: Optional[str]) -> Optional[float]:
    if s is None:
        return None
    try:
        value = float(s)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def _dollars_and_cents(dollars: str, cents: str) -> Optional[float]:
    d = _to_float(dollars)
    c = _to_float(cents)
    if d is None or c is None:
        return None
    return round(d + c / 100.0, 2)


# ── Geometry-aware price ──────────────────────────────────────────────────────

def collect_candidates(
    observations: Iterable[RecognizedObservation],
) -> tuple[list[DollarCandidate], list[SmallToken]]:
    """Scan every observation for dollar candidates and two-digit tokens."""
    dollars: list[DollarCandidate] = []
    tokens: list[SmallToken] = []

    for obs in observations:
        s = obs.text or ""

        # Two-digit tokens (possible cents)
        for m in TWO_DIGITS_RE.finditer(s):
            box = obs.bounding_box(m.start(), m.end())
            if box is not None:
                tokens.append(SmallToken(text=m.group(0), box=box))

        # Dollars immediately after '$'
        for m in DOLLAR_RE.finditer(s):
            box = obs.bounding_box(m.start(1), m.end(1))
            if box is not None:
                dollars.append(DollarCandidate(digits=m.group(1), box=box))

        # Bare dollars: the '$' was read as a separate region or not at all
        stripped = s.strip()
        if len(stripped) <= 4 and any(c.isdigit() for c in s) and "$" not in s:
            m = BARE_DIGITS_RE.search(s)
            if m:
                box = obs.bounding_box(m.start(), m.end())
                if box is not None:
                    dollars.append(DollarCandidate(digits=m.group(0), box=box))

    return dollars, tokens


def looks_like_superscript_cents(base: NormalizedRect, small: NormalizedRect) -> bool:
    """Cents token sits just right of the dollars, level or higher, and smaller."""
    dx = small.min_x - base.max_x
    dy = small.mid_y - base.mid_y   # larger y is higher up
    size_ratio = small.height / max(0.0001, base.height)

    close_right = CENTS_DX_MIN <= dx <= CENTS_DX_MAX
    slightly_above = CENTS_DY_MIN <= dy <= CENTS_DY_MAX
    smaller = size_ratio <= CENTS_MAX_SIZE_RATIO
    return close_right and slightly_above and smaller


def _center_distance(a: NormalizedRect, b: NormalizedRect) -> float:
    return math.hypot(a.mid_x - b.mid_x, a.mid_y - b.mid_y)


def pair_dollars_with_cents(
    dollars: Sequence[DollarCandidate],
    tokens: Sequence[SmallToken],
) -> Optional[float]:
    for d in dollars:
        if _to_float(d.digits) is None:
            continue
        qualifying = [t for t in tokens if looks_like_superscript_cents(d.box, t.box)]
        if not qualifying:
            continue
        nearest = min(qualifying, key=lambda t: _center_distance(t.box, d.box))
        price = _dollars_and_cents(d.digits, nearest.text)
        if price is not None:
            return price
    return None


def extract_price_with_geometry(observations: Iterable[RecognizedObservation]) -> Optional[float]:
    """Find '$' + dollars and a small two-digit token up/right of it."""
    dollars, tokens = collect_candidates(observations)
    return pair_dollars_with_cents(dollars, tokens)


# ── Text-only fallback ────────────────────────────────────────────────────────

def _parse_grouped(m: "re.Match[str]") -> Optional[float]:
    # "$15 80", "$1580" and "$580" belong to the cents tiers below.  A plain
    # "$15" stays here so a later "$2.50" tip can't win.
    s = m.group(1).strip()
    if CENTS_FOLLOW_RE.match(m.string, m.end()):
        return None
    if s.isdigit() and len(s) >= 3:
        return None
    return _to_float(s.replace(",", ""))


def _parse_separated(m: "re.Match[str]") -> Optional[float]:
    return _dollars_and_cents(m.group(1).strip(), m.group(2).strip())


def _parse_run_on(m: "re.Match[str]") -> Optional[float]:
    digits = m.group(1).strip().replace(",", "")
    if len(digits) < 3:
        return None
    return _dollars_and_cents(digits[:-2], digits[-2:])


def _parse_whole(m: "re.Match[str]") -> Optional[float]:
    return _to_float(m.group(1).strip())


PriceTier = tuple[str, "re.Pattern[str]", Callable[["re.Match[str]"], Optional[float]]]

PRICE_TIERS: tuple[PriceTier, ...] = (
    ("grouped", GROUPED_PRICE_RE, _parse_grouped),        # $1,234.56
    ("separated", SEPARATED_CENTS_RE, _parse_separated),  # $15 80 / $15•80
    ("run_on", RUN_ON_CENTS_RE, _parse_run_on),           # $1580 → 15.80
    ("whole", WHOLE_DOLLARS_RE, _parse_whole),            # $15
)


def extract_pay_amount(text: str) -> Optional[float]:
    """First tier whose first match parses wins; a failed parse falls through."""
    for _name, pattern, parse in PRICE_TIERS:
        m = pattern.search(text)
        if m is None:
            continue
        value = parse(m)
        if value is not None:
            return value
    return None


# ── Other fields ──────────────────────────────────────────────────────────────

def extract_miles(text: str) -> Optional[float]:
    """'11 mi' → 11.0"""
    return _to_float(first_match(text, MILES_RE))


def extract_pickup_label(text: str) -> Optional[str]:
    """Best-effort 'City, ST' guess; the region code is not validated."""
    label = first_match(text, PICKUP_RE)
    return label or None


# ── Assembly ──────────────────────────────────────────────────────────────────

def flatten_text(observations: Iterable[RecognizedObservation]) -> str:
    return "\n".join(obs.text for obs in observations if obs.text is not None)


def parse_observations(observations: Sequence[RecognizedObservation]) -> Parsed:
    full_text = flatten_text(observations)

    pay = extract_price_with_geometry(observations)
    if pay is None:
        pay = extract_pay_amount(full_text)

    return Parsed(
        pay_usd=pay,
        gig_miles=extract_miles(full_text),
        pickup_query=extract_pickup_label(full_text),
        raw_text=full_text,
    )
