from typing import Any, Iterable

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from pegeldict.utils.text import clean, contains

ENRICHED_FIELDS = ("country", "region", "district", "city", "drainage_basin")


class EnrichedField(BaseModel):
    """One enrichable value: the canonical name plus equivalent alternatives."""

    canonical: str | None = None
    alternatives: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def drop_canonical_repeats(self) -> "EnrichedField":
        self.canonical = clean(self.canonical)
        if self.canonical is None:
            self.alternatives = []
        else:
            self.alternatives = [alt for alt in self.alternatives if alt and alt != self.canonical]
        return self

    def values(self) -> list[str]:
        if self.canonical is None:
            return []
        return [self.canonical, *self.alternatives]

    def matches(self, term: str) -> bool:
        if contains(self.canonical, term):
            return True
        return any(contains(alt, term) for alt in self.alternatives)


class Water(BaseModel):
    model_config = ConfigDict(extra="ignore")

    shortname: str | None = None
    longname: str | None = None


class Timeseries(BaseModel):
    model_config = ConfigDict(extra="ignore")

    shortname: str | None = None
    longname: str | None = None
    unit: str | None = None
    equidistance: int | None = None
    topic: str | None = None
    link: str | None = None


class Station(BaseModel):
    model_config = ConfigDict(extra="ignore")

    uuid: str
    number: str | None = None
    shortname: str | None = None
    longname: str | None = None
    km: float | None = None
    agency: str | None = None
    longitude: float | None = None
    latitude: float | None = None
    water: Water | None = None
    timeseries: list[Timeseries] = Field(default_factory=list)
    topic: str | None = None

    country: str | None = None
    country_alt: list[str] | None = None
    region: str | None = None
    region_alt: list[str] | None = None
    district: str | None = None
    district_alt: list[str] | None = None
    city: str | None = None
    city_alt: list[str] | None = None
    drainage_basin: str | None = None
    drainage_basin_alt: list[str] | None = None
    water_alt: list[str] | None = None

    @field_validator("number", mode="before")
    @classmethod
    def number_as_text(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @model_validator(mode="after")
    def normalize_enrichment(self) -> "Station":
        for name in ENRICHED_FIELDS:
            field = EnrichedField(canonical=getattr(self, name), alternatives=getattr(self, f"{name}_alt") or [])
            setattr(self, name, field.canonical)
            setattr(self, f"{name}_alt", field.alternatives or None)
        if self.water_alt is not None:
            self.water_alt = [alt for alt in self.water_alt if alt] or None
        return self

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def enriched(self, name: str) -> EnrichedField:
        if name not in ENRICHED_FIELDS:
            raise KeyError(name)
        return EnrichedField(canonical=getattr(self, name), alternatives=getattr(self, f"{name}_alt") or [])

    def enrichment(self) -> dict[str, Any]:
        keys = [*ENRICHED_FIELDS, *(f"{name}_alt" for name in ENRICHED_FIELDS), "water_alt"]
        return {key: getattr(self, key) for key in keys}

    def with_enrichment(self, fields: dict[str, EnrichedField], water_alt: Iterable[str] | None) -> "Station":
        update: dict[str, Any] = {}
        for name, field in fields.items():
            if name not in ENRICHED_FIELDS:
                raise KeyError(name)
            update[name] = field.canonical
            update[f"{name}_alt"] = field.alternatives or None
        update["water_alt"] = list(water_alt) if water_alt else None
        return Station.model_validate({**self.to_record(), **update})

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class StationQuery(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    station: str | None = None
    water: str | None = Field(default=None, validation_alias=AliasChoices("water", "gewaesser"))
    agency: str | None = None
    region: str | None = Field(default=None, validation_alias=AliasChoices("region", "land"))
    country: str | None = None
    drainage_basin: str | None = Field(
        default=None, validation_alias=AliasChoices("drainage_basin", "einzugsgebiet")
    )
    district: str | None = Field(default=None, validation_alias=AliasChoices("district", "kreis"))
    parameter: str | None = None
    bbox: str | None = None
    q: str | None = None

    @field_validator("*", mode="before")
    @classmethod
    def blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str):
            return clean(value)
        return value

    def has_structured_filters(self) -> bool:
        return any(value is not None for key, value in self.model_dump().items() if key != "q")


class AggregatedStationResponse(BaseModel):
    topics: list[str] = Field(default_factory=list)
    links: list[str] = Field(default_factory=list)
    stations: list[Station] = Field(default_factory=list)


class AddressData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    country: str | None = None
    state: str | None = None
    county: str | None = None
    city: str | None = None

    @field_validator("*", mode="before")
    @classmethod
    def blank_to_none(cls, value: Any) -> Any:
        if value is None:
            return None
        return clean(str(value))


class PlaceCandidate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    type: str | None = None
    display_name: str | None = None
    category: str | None = None
    place_rank: int | None = None
    lat: float | None = None
    lon: float | None = None

    @model_validator(mode="before")
    @classmethod
    def prefer_address_type(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("addresstype"):
            data = {**data, "type": data["addresstype"]}
        return data
