"""
Title Normalizer for Catalog Consolidation

Pulls a trailing pack-size or flavor token out of a free-text product title
and returns what is left as the base name used for grouping.

Rules are tried in a fixed order and the first match wins. Every job that
needs to know "does this title carry a size" goes through this module.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional, Pattern, Sequence

from .models import SizeToken

QUANTITY = r"(?<![\d.])(?P<qty>\d+(?:\.\d+)?)"
BRACKETED = re.compile(r"\s*[\(\[]([^\(\)\[\]]*)[\)\]]")
TRAILING_JUNK = re.compile(r"[\s\-,:;/|]+$")
CACHE_SIZE = 8192

# Longer phrases first so "peanut butter" wins over "butter".
KNOWN_FLAVORS: Sequence[str] = (
    "peanut butter",
    "sweet potato",
    "bacon",
    "beef",
    "chicken",
    "duck",
    "salmon",
    "turkey",
    "lamb",
    "liver",
    "pork",
    "venison",
    "fish",
    "tuna",
    "cheese",
    "original",
    "unflavored",
)


@dataclass
class SizePattern:
    """One rule of the ordered rule table."""
    name: str
    units: Dict[str, str]  # unit spelling (regex) -> canonical unit
    option_name: str
    integer_only: bool = False

    def __post_init__(self):
        unit_alt = "|".join(sorted(self.units, key=len, reverse=True))
        qty = r"(?<![\d.])(?P<qty>\d+)" if self.integer_only else QUANTITY
        self._unit_re = re.compile(rf"^(?:{unit_alt})$", re.IGNORECASE)
        self._compiled: Pattern = re.compile(
            rf"^(?P<base>.+?)\s*(?P<token>{qty}\s*(?P<unit>{unit_alt}))\.?$",
            re.IGNORECASE,
        )
        self._bare: Pattern = re.compile(
            rf"^(?P<token>{qty}\s*(?P<unit>{unit_alt}))\.?$",
            re.IGNORECASE,
        )

    def match(self, text: str) -> Optional[re.Match]:
        return self._compiled.match(text)

    def match_bare(self, text: str) -> Optional[re.Match]:
        """Match a size with no base name, e.g. the inside of "(60 Count)"."""
        return self._bare.match(text.strip())

    def label_key(self, qty: str, unit: str) -> str:
        canonical = unit.lower()
        for spelling, value in self.units.items():
            if re.fullmatch(spelling, unit, re.IGNORECASE):
                canonical = value
                break
        try:
            number = format(Decimal(qty).normalize(), "f")
        except InvalidOperation:
            number = qty
        return f"{number}{canonical}"


# ============================================================================
# SIZE RULES - fixed priority order, first match wins
# ============================================================================

SIZE_PATTERNS: List[SizePattern] = [
    # 30 Ct, 60 Count, 120ct.
    SizePattern(
        name="count",
        units={r"counts?": "ct", r"cts?": "ct", r"cnt": "ct"},
        option_name="Count",
        integer_only=True,
    ),
    # 16oz, 4.6 oz, 8 fl oz
    SizePattern(
        name="ounce",
        units={r"fl\.?\s*oz": "floz", r"oz": "oz", r"ounces?": "oz"},
        option_name="Size",
    ),
    # 2Lb, 4 Lbs, 20 pounds
    SizePattern(
        name="pound",
        units={r"lbs?": "lb", r"pounds?": "lb"},
        option_name="Size",
    ),
    # 40 Grams, 60g, 2 kg
    SizePattern(
        name="gram",
        units={r"kg": "kg", r"kilograms?": "kg", r"grams?": "g", r"g": "g"},
        option_name="Size",
    ),
    # 150mg, 300 MG
    SizePattern(
        name="milligram",
        units={r"mg": "mg", r"milligrams?": "mg"},
        option_name="Size",
    ),
]


def collapse(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


class TitleNormalizer:
    """
    Extracts (base name, size token) pairs from product titles.

    Parenthetical or bracketed segments that are not themselves a size are
    dropped before matching. A trailing "(60 Count)" is kept and handled by
    the bracketed rule, which runs after the plain unit rules.
    """

    def __init__(
        self,
        patterns: Optional[List[SizePattern]] = None,
        flavors: Optional[Iterable[str]] = None,
    ):
        self.patterns = list(patterns or SIZE_PATTERNS)
        self.flavors = sorted(
            {f.strip().lower() for f in (flavors if flavors is not None else KNOWN_FLAVORS) if f.strip()},
            key=len,
            reverse=True,
        )
        self._flavor_re: Optional[Pattern] = None
        if self.flavors:
            alt = "|".join(re.escape(f).replace(r"\ ", r"\s+") for f in self.flavors)
            self._flavor_re = re.compile(
                rf"^(?P<base>.+?)\s+(?P<token>{alt})\.?$", re.IGNORECASE
            )
        self._match = lru_cache(maxsize=CACHE_SIZE)(self._extract)

    def classify_size(self, text: str):
        """Return (pattern, match) for a bare size string, or None."""
        for pattern in self.patterns:
            m = pattern.match_bare(text)
            if m:
                return pattern, m
        return None

    def _strip_noise_brackets(self, title: str) -> str:
        def repl(m: re.Match) -> str:
            return m.group(0) if self.classify_size(m.group(1)) else ""

        return collapse(BRACKETED.sub(repl, title))

    def _finish(self, base: str, token: str, rule: str, option_name: str, key: str) -> SizeToken:
        base = collapse(BRACKETED.sub("", base))
        base = TRAILING_JUNK.sub("", base)
        # Empty base: extract() treats it as no match, is_invalid() reports it.
        return SizeToken(
            base_name=base,
            token=collapse(token),
            rule=rule,
            option_name=option_name,
            label_key=key,
        )

    def extract(self, title: str) -> Optional[SizeToken]:
        """Return the SizeToken for `title`, or None when no rule matches or the base name is empty."""
        token = self._match(title)
        if token is None or not token.base_name:
            return None
        return token

    def is_invalid(self, title: str) -> bool:
        """True when a rule matched but nothing is left of the title once the token is removed."""
        token = self._match(title)
        return token is not None and not token.base_name

    def _extract(self, title: str) -> Optional[SizeToken]:
        text = self._strip_noise_brackets(title)
        if not text:
            return None

        for pattern in self.patterns:
            m = pattern.match(text)
            if m:
                key = pattern.label_key(m.group("qty"), m.group("unit"))
                return self._finish(m.group("base"), m.group("token"), pattern.name, pattern.option_name, key)

        bracketed = re.match(r"^(?P<base>.+?)\s*[\(\[](?P<inner>[^\(\)\[\]]+)[\)\]]\.?$", text)
        if bracketed:
            found = self.classify_size(bracketed.group("inner"))
            if found:
                pattern, m = found
                key = pattern.label_key(m.group("qty"), m.group("unit"))
                return self._finish(bracketed.group("base"), m.group("token"), "bracketed", pattern.option_name, key)

        if self._flavor_re is not None:
            m = self._flavor_re.match(text)
            if m:
                key = collapse(m.group("token")).lower()
                return self._finish(m.group("base"), m.group("token"), "flavor", "Flavor", key)

        return None

    def has_size(self, title: str) -> bool:
        return self.extract(title) is not None

    def clean_name(self, title: str) -> str:
        """Base name for a title with no token: brackets removed, whitespace collapsed."""
        return TRAILING_JUNK.sub("", collapse(BRACKETED.sub("", title or "")))


_DEFAULT = TitleNormalizer()


def extract_size_token(title: str) -> Optional[SizeToken]:
    return _DEFAULT.extract(title)
