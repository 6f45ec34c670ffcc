from dataclasses import dataclass
from typing import Iterable, Sequence

from pegeldict.schemas.station import AddressData, EnrichedField
from pegeldict.utils.text import first_present, transliterate_umlauts

ADDRESS_FIELDS = ("country", "region", "district", "city")


@dataclass
class CanonicalAddress:
    country: str | None = None
    region: str | None = None
    district: str | None = None
    city: str | None = None

    def get(self, name: str) -> str | None:
        return getattr(self, name)


def canonical_address(address: AddressData) -> CanonicalAddress:
    """Collapse a geocoder address into the four station fields.

    A missing state falls back to the county and then the city, a missing
    county falls back to the city.
    """
    return CanonicalAddress(
        country=address.country,
        region=first_present([address.state, address.county, address.city]),
        district=first_present([address.county, address.city]),
        city=address.city,
    )


def merge_languages(baseline: AddressData, others: Sequence[AddressData]) -> dict[str, EnrichedField]:
    """Build address fields from the baseline result plus other-language results.

    Any value from another language that differs from the baseline becomes an
    alternative, followed by one umlaut transliteration of the canonical value.
    """
    canonical = canonical_address(baseline)
    translated = [canonical_address(address) for address in others]
    fields: dict[str, EnrichedField] = {}
    for name in ADDRESS_FIELDS:
        value = canonical.get(name)
        if value is None:
            fields[name] = EnrichedField()
            continue
        alternatives = [other.get(name) for other in translated]
        alternatives = [alt for alt in alternatives if alt and alt != value]
        transliterated = transliterate_umlauts(value)
        if transliterated:
            alternatives.append(transliterated)
        fields[name] = EnrichedField(canonical=value, alternatives=alternatives)
    return fields


def extend_alternatives(field: EnrichedField, extra: Iterable[str] | None) -> EnrichedField:
    if field.canonical is None or not extra:
        return field
    alternatives = list(field.alternatives)
    for alt in extra:
        if alt and alt != field.canonical and alt not in alternatives:
            alternatives.append(alt)
    return EnrichedField(canonical=field.canonical, alternatives=alternatives)
