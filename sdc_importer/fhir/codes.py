"""
Code system and unit normalization.

Maps external code system URIs to the short names used on the form and
reconciles Quantity answers against the unit list declared on a question,
converting between UCUM units through an injected `UnitConverter`.
"""
import logging
import math
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sdc_importer.form.models import Unit
from .constants import LOINC, LOINC_URI, UCUM_URI

logger = logging.getLogger(__name__)

_DIGITS = re.compile(r"(\d+)(?:\.(\d+))?")

CONVERSION_SUCCEEDED = "succeeded"


def to_internal_code_system(code_system: Optional[str]) -> Optional[str]:
    """Convert a code system URI to its internal name (only LOINC is renamed)."""
    if code_system == LOINC_URI:
        return LOINC
    return code_system


def to_fhir_code_system(code_system: Optional[str]) -> Optional[str]:
    """Inverse of `to_internal_code_system`."""
    if code_system == LOINC:
        return LOINC_URI
    return code_system


def significant_digits(x: Any) -> int:
    """
    Number of significant digits of a numeric value, ignoring trailing zeros.

    Integers count their digits (250 -> 3), except a single digit followed
    only by zeros (100, 20), whose precision is unknown. Values whose whole
    part is zero and anything that is not a finite number count as 0 digits,
    which means "do not round".
    """
    if isinstance(x, bool):
        return 0
    try:
        number = float(x)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number):
        return 0
    if number == int(number):
        digits = str(int(abs(number)))
        if digits == "0" or (len(digits) > 1 and len(digits.rstrip("0")) == 1):
            return 0
        return len(digits)
    # repr() gives the shortest round-tripping form, so trailing zeros are gone
    match = _DIGITS.search(repr(abs(number)))
    if not match:
        return 0
    whole, fraction = match.group(1), match.group(2)
    if whole == "0":
        return 0
    return len(whole) + (len(fraction) if fraction else 0)


def round_to_significant_digits(value: float, digits: int) -> float:
    if digits <= 0:
        return value
    return float(f"{value:.{digits}g}")


@dataclass
class ConversionResult:
    """Outcome of a unit conversion request."""
    status: str
    value: Optional[float] = None

    @property
    def succeeded(self) -> bool:
        return self.status == CONVERSION_SUCCEEDED


class UnitConverter(ABC):
    """
    Unit conversion collaborator.

    The arithmetic lives outside this package; implementations wrap a UCUM
    library or service.
    """

    @abstractmethod
    def convert(self, from_code: str, value: float, to_code: str) -> ConversionResult:
        """Convert `value` expressed in `from_code` into `to_code`."""
        pass


class NoUnitConversion(UnitConverter):
    """Converter used when none is configured: every conversion fails."""

    def convert(self, from_code: str, value: float, to_code: str) -> ConversionResult:
        return ConversionResult(status="failed")


@dataclass
class UnitMatch:
    """Result of matching a Quantity against a question's units."""
    matched: bool
    unit: Optional[Unit] = None
    value: Any = None
    code: Optional[str] = None
    converted: bool = False

    @classmethod
    def not_matched(cls) -> "UnitMatch":
        return cls(matched=False)


def _normalize_system(system: Optional[str]) -> Optional[str]:
    # Some servers send the UCUM uri with a trailing slash
    if system and system.endswith("/"):
        return system[:-1]
    return system


def _unit_matches(unit: Unit, system: Optional[str], code: Optional[str],
                  name: Optional[str]) -> bool:
    if unit.system:
        return unit.system == system and unit.code == code
    if unit.name is not None and name is not None:
        return unit.name == name
    return unit.code is not None and unit.code == code


def match_unit(
    quantity: Dict[str, Any],
    units: List[Unit],
    converter: Optional[UnitConverter] = None,
) -> UnitMatch:
    """
    Find the unit in `units` that a Quantity payload is expressed in.

    Falls back to converting a UCUM quantity into the first UCUM unit of the
    list; the converted value is rounded to the significant digits of the
    original value. A not-matched result means the value must be rejected.
    """
    system = _normalize_system(quantity.get("system"))
    code = quantity.get("code")
    name = quantity.get("unit")
    value = quantity.get("value")

    ucum_unit = None
    is_ucum = system == UCUM_URI
    for unit in units:
        if _unit_matches(unit, system, code, name):
            return UnitMatch(matched=True, unit=unit, value=value, code=code)
        if is_ucum and ucum_unit is None and unit.system == UCUM_URI:
            ucum_unit = unit

    if ucum_unit is None or value is None:
        logger.debug("No unit matches %s %s", value, code or name)
        return UnitMatch.not_matched()

    converter = converter or NoUnitConversion()
    result = converter.convert(code, value, ucum_unit.code)
    if not result.succeeded:
        logger.debug("Unable to convert %s %s to %s", value, code, ucum_unit.code)
        return UnitMatch.not_matched()

    converted = round_to_significant_digits(result.value, significant_digits(value))
    return UnitMatch(
        matched=True,
        unit=ucum_unit,
        value=converted,
        code=ucum_unit.code,
        converted=True,
    )
