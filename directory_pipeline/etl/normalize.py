"""Deterministic normalization helpers used for ingestion and deduplication.

Everything here is a pure string function. ``normalize_address`` produces a
comparison form, not a display form: the same street address written with a
full state name, a suite number or a trailing ZIP collapses to one string that
always ends with the two-letter state code when one could be found.
"""

import hashlib
import re
from typing import Dict, Optional

STATE_NAME_TO_CODE: Dict[str, str] = {
    "alabama": "al",
    "alaska": "ak",
    "arizona": "az",
    "arkansas": "ar",
    "california": "ca",
    "colorado": "co",
    "connecticut": "ct",
    "delaware": "de",
    "florida": "fl",
    "georgia": "ga",
    "hawaii": "hi",
    "idaho": "id",
    "illinois": "il",
    "indiana": "in",
    "iowa": "ia",
    "kansas": "ks",
    "kentucky": "ky",
    "louisiana": "la",
    "maine": "me",
    "maryland": "md",
    "massachusetts": "ma",
    "michigan": "mi",
    "minnesota": "mn",
    "mississippi": "ms",
    "missouri": "mo",
    "montana": "mt",
    "nebraska": "ne",
    "nevada": "nv",
    "new hampshire": "nh",
    "new jersey": "nj",
    "new mexico": "nm",
    "new york": "ny",
    "north carolina": "nc",
    "north dakota": "nd",
    "ohio": "oh",
    "oklahoma": "ok",
    "oregon": "or",
    "pennsylvania": "pa",
    "rhode island": "ri",
    "south carolina": "sc",
    "south dakota": "sd",
    "tennessee": "tn",
    "texas": "tx",
    "utah": "ut",
    "vermont": "vt",
    "virginia": "va",
    "washington": "wa",
    "west virginia": "wv",
    "wisconsin": "wi",
    "wyoming": "wy",
    "district of columbia": "dc",
}

STATE_CODE_TO_NAME: Dict[str, str] = {code: name for name, code in STATE_NAME_TO_CODE.items()}
STATE_CODES = frozenset(STATE_CODE_TO_NAME)

_CODES = "|".join(sorted(STATE_CODES))
_NAMES = "|".join(
    name.replace(" ", r"\s+") for name in sorted(STATE_NAME_TO_CODE, key=len, reverse=True)
)

# A trailing code needs a separator before it unless it is the whole string.
_TRAILING_CODE = re.compile(rf"(?:^|[,\s]+)({_CODES})(?:\s+\d{{5}})?(?:[-\s]*\d{{4}})?\s*$")
_TRAILING_NAME = re.compile(rf",\s*({_NAMES})(?:,?\s*\d{{5}})?(?:[-\s]*\d{{4}})?\s*$")

_NOISE = re.compile(r"\b(?:usa|united\s+states)\b")
_PUNCTUATION = re.compile(r"[^\w\s]", re.ASCII)
_DOUBLED_ZIP = re.compile(r"\b(\d{5})\s+\1\s*$")
_ZIP_AT_END = re.compile(r"\s+\d{5}(?:[-\s]*\d{4})?\s*$")
_STATE_NAME_AT_END = re.compile(rf"\s({_NAMES})\s*$")
_STATE_CODE_AT_END = re.compile(rf"\b({_CODES})\s*$")

_STREET_SUFFIXES = (
    (r"\b(?:street|str)\b", "st"),
    (r"\b(?:avenue|ave)\b", "av"),
    (r"\b(?:boulevard|blvd)\b", "bl"),
    (r"\b(?:highway|hwy)\b", "hw"),
    (r"\bfreeway\b", "fwy"),
    (r"\bdrive\b", "dr"),
    (r"\broad\b", "rd"),
    (r"\blane\b", "ln"),
    (r"\bcourt\b", "ct"),
    (r"\bcircle\b", "cir"),
    (r"\bplace\b", "pl"),
    (r"\bterrace\b", "ter"),
    (r"\bparkway\b", "pkwy"),
    (r"\bway\b", "wy"),
    (r"\bsuite\b", "ste"),
    (r"\bapartment\b", "apt"),
)
_DIRECTIONALS = (
    (r"\bnortheast\b", "ne"),
    (r"\bnorthwest\b", "nw"),
    (r"\bsoutheast\b", "se"),
    (r"\bsouthwest\b", "sw"),
    (r"\bnorth\b", "n"),
    (r"\bsouth\b", "s"),
    (r"\beast\b", "e"),
    (r"\bwest\b", "w"),
)
_ABBREVIATIONS = tuple((re.compile(pattern), short) for pattern, short in _STREET_SUFFIXES + _DIRECTIONALS)

# Unit designator plus the token that follows it ("ste 400", "unit b").
_UNIT = re.compile(r"\b(?:ste|unit|apt|bldg|building|floor|fl)\b\s*\w*", re.ASCII)
_WHITESPACE = re.compile(r"\s+")

_LEGAL_SUFFIXES = re.compile(r"\b(?:llc|inc|corp|corporation|company|co|ltd|limited)\b")
_ARTICLES = re.compile(r"\b(?:the|a|an)\b")
_INDUSTRY_WORDS = re.compile(r"\b(?:appliance|repair|service|services|tech|technician|technicians)\b")

_ZIP_IN_ADDRESS = re.compile(
    r"\b(\d{5})(?:-\d{4})?\s*(?:,?\s*(?:usa?|united states)?)?$", re.IGNORECASE
)
_MAX_PASSES = 4
_MIN_ZIP = 501
_MAX_ZIP = 99950

_SLUG_SEPARATORS = re.compile(r"[^a-z0-9]+")


def _extract_state_code(lowered: str) -> Optional[str]:
    match = _TRAILING_CODE.search(lowered)
    if match:
        return match.group(1)
    match = _TRAILING_NAME.search(lowered)
    if match:
        name = _WHITESPACE.sub(" ", match.group(1))
        return STATE_NAME_TO_CODE.get(name)
    return None


def normalize_address(address: Optional[str]) -> str:
    """Normalize an address string for consistent comparison.

    The state code is extracted before anything is stripped and re-appended at
    the very end, so two addresses in different states never collapse to the
    same form. Only trailing state designations are recognised.
    """
    if not address:
        return ""

    normalized = _normalize_pass(address)
    # Stripping a trailing state name can expose a ZIP that an earlier step
    # would have removed; repeat until the form is stable.
    for _ in range(_MAX_PASSES):
        again = _normalize_pass(normalized)
        if again == normalized:
            break
        normalized = again
    return normalized


def _normalize_pass(address: str) -> str:
    normalized = address.lower()
    state_code = _extract_state_code(normalized)

    normalized = _NOISE.sub("", normalized)
    normalized = _PUNCTUATION.sub(" ", normalized)
    normalized = _DOUBLED_ZIP.sub("", normalized)
    normalized = _ZIP_AT_END.sub("", normalized)
    normalized = _STATE_NAME_AT_END.sub("", normalized)
    normalized = _STATE_CODE_AT_END.sub("", normalized)

    for pattern, short in _ABBREVIATIONS:
        normalized = pattern.sub(short, normalized)

    normalized = _UNIT.sub("", normalized)
    normalized = _WHITESPACE.sub(" ", normalized).strip()

    if state_code in STATE_CODES:
        normalized = f"{normalized} {state_code}" if normalized else state_code
    return normalized


def hash_address(address: Optional[str]) -> str:
    """Return the first 16 hex chars of the SHA-256 of the normalized address."""
    normalized = normalize_address(address)
    if not normalized:
        return ""
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:16]


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """Normalize a US phone number to +1XXXXXXXXXX, or None when it is not one."""
    if not phone:
        return None

    digits = re.sub(r"\D", "", phone)
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits[0] == "1":
        return f"+{digits}"
    return None


def normalize_business_name(name: Optional[str]) -> str:
    """Reduce a business name to its distinctive words for soft grouping."""
    if not name:
        return ""

    normalized = _PUNCTUATION.sub("", name.lower())
    normalized = _LEGAL_SUFFIXES.sub("", normalized)
    normalized = _ARTICLES.sub("", normalized)
    normalized = _INDUSTRY_WORDS.sub("", normalized)
    return _WHITESPACE.sub(" ", normalized).strip()


def extract_zip_from_address(address: Optional[str]) -> Optional[str]:
    """Return the trailing US ZIP code of an address when it is in the USPS range."""
    if not address:
        return None

    match = _ZIP_IN_ADDRESS.search(address.strip())
    if not match:
        return None
    zip_code = match.group(1)
    if _MIN_ZIP <= int(zip_code) <= _MAX_ZIP:
        return zip_code
    return None


def slugify(text: Optional[str]) -> str:
    return _SLUG_SEPARATORS.sub("-", (text or "").lower()).strip("-")


def resolve_state_code(designation: Optional[str]) -> Optional[str]:
    """Map a state name or two-letter code to an upper-case code."""
    if not designation:
        return None

    value = _WHITESPACE.sub(" ", designation.strip().lower())
    if len(value) == 2:
        return value.upper() if value in STATE_CODES else None
    code = STATE_NAME_TO_CODE.get(value)
    return code.upper() if code else None


def state_slug(code: str) -> Optional[str]:
    """Return the directory slug of a state ("NC" -> "north-carolina")."""
    name = STATE_CODE_TO_NAME.get(code.lower())
    if name is None:
        return None
    return name.replace(" ", "-")
