"""Donor address as a tagged union.

Older donations carry a single free-text address; newer ones carry the
structured line/city/state/country/pincode fields. Call sites go through
``display()`` and ``city()`` rather than probing which fields are set.
"""

import re
from dataclasses import dataclass
from typing import Union

_PINCODE_TAIL = re.compile(r"[-\s]?\d{6}\s*$")
_STATE_NAMES = re.compile(
    r"\b(Maharashtra|Gujarat|Karnataka|Tamil Nadu|Delhi|Rajasthan|UP|MP|Bihar|"
    r"West Bengal|Telangana|Andhra Pradesh|Uttar Pradesh|Madhya Pradesh)\b",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class LegacyAddress:
    text: str

    def display(self) -> str:
        return self.text or ""

    def city(self) -> str:
        if not self.text:
            return "India"
        parts = [p.strip() for p in _PINCODE_TAIL.sub("", self.text).strip().split(",")]
        if len(parts) >= 2:
            candidate = parts[-2] if len(parts) >= 3 else parts[-1]
            candidate = _STATE_NAMES.sub("", candidate).strip()
            if len(candidate) > 1:
                return candidate
        return "India"


@dataclass(frozen=True)
class StructuredAddress:
    line: str = ""
    city_name: str = ""
    state: str = ""
    country: str = "India"
    pincode: str = ""

    def display(self) -> str:
        parts = [self.line, self.city_name, self.state, self.country, self.pincode]
        return ", ".join(p for p in parts if p)

    def city(self) -> str:
        return self.city_name or "India"


DonorAddress = Union[LegacyAddress, StructuredAddress]
