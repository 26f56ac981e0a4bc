"""Typed record shapes projected from decoded database values.

Each shape maps the keys it knows from a decoded map onto a strict pydantic
model. Absent keys keep their defaults; keys present with the wrong type raise
RecordTypeError; unknown keys are ignored.
"""

from typing import Any, ClassVar, Self

from pydantic import BaseModel, ConfigDict, ValidationError

from exceptions import RecordTypeError


def _map(value: Any, owner: str) -> dict:
    """Return ``value`` as a map, treating None as empty."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise RecordTypeError(f"{owner}: expected a map, got {type(value).__name__}")
    return value


def _list(value: Any, owner: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise RecordTypeError(f"{owner}: expected an array, got {type(value).__name__}")
    return value


def _pick(data: dict, *keys: str) -> dict:
    return {key: data[key] for key in keys if key in data}


class Record(BaseModel):
    """Base for all record shapes."""

    model_config = ConfigDict(frozen=True, strict=True)

    SHAPE: ClassVar[str] = "record"

    @classmethod
    def _build(cls, fields: dict) -> Self:
        try:
            return cls(**fields)
        except ValidationError as e:
            err = e.errors()[0]
            field = ".".join(str(part) for part in err["loc"])
            raise RecordTypeError(f"{cls.SHAPE}.{field}: {err['msg']}") from e


# --- Place sub-records ---


class CityRecord(Record):
    SHAPE: ClassVar[str] = "city"

    geoname_id: int | None = None
    names: dict[str, str] = {}

    @classmethod
    def from_value(cls, value: Any) -> Self:
        data = _map(value, cls.SHAPE)
        return cls._build(_pick(data, "geoname_id", "names"))


class ContinentRecord(Record):
    SHAPE: ClassVar[str] = "continent"

    code: str | None = None
    geoname_id: int | None = None
    names: dict[str, str] = {}

    @classmethod
    def from_value(cls, value: Any) -> Self:
        data = _map(value, cls.SHAPE)
        return cls._build(_pick(data, "code", "geoname_id", "names"))


class CountryRecord(Record):
    SHAPE: ClassVar[str] = "country"

    geoname_id: int | None = None
    iso_code: str | None = None
    names: dict[str, str] = {}

    @classmethod
    def from_value(cls, value: Any) -> Self:
        data = _map(value, cls.SHAPE)
        return cls._build(_pick(data, "geoname_id", "iso_code", "names"))


class RepresentedCountryRecord(Record):
    """Country represented by users of the address, e.g. a military base."""

    SHAPE: ClassVar[str] = "represented_country"

    geoname_id: int | None = None
    iso_code: str | None = None
    names: dict[str, str] = {}
    type: str | None = None

    @classmethod
    def from_value(cls, value: Any) -> Self:
        data = _map(value, cls.SHAPE)
        return cls._build(_pick(data, "geoname_id", "iso_code", "names", "type"))


class LocationRecord(Record):
    SHAPE: ClassVar[str] = "location"

    accuracy_radius: int | None = None
    latitude: float | None = None
    longitude: float | None = None
    metro_code: int | None = None
    time_zone: str | None = None

    @classmethod
    def from_value(cls, value: Any) -> Self:
        data = _map(value, cls.SHAPE)
        return cls._build(
            _pick(data, "accuracy_radius", "latitude", "longitude", "metro_code", "time_zone")
        )


class PostalRecord(Record):
    SHAPE: ClassVar[str] = "postal"

    code: str | None = None

    @classmethod
    def from_value(cls, value: Any) -> Self:
        return cls._build(_pick(_map(value, cls.SHAPE), "code"))


class SubdivisionRecord(Record):
    SHAPE: ClassVar[str] = "subdivisions"

    geoname_id: int | None = None
    iso_code: str | None = None
    names: dict[str, str] = {}

    @classmethod
    def from_value(cls, value: Any) -> Self:
        data = _map(value, cls.SHAPE)
        return cls._build(_pick(data, "geoname_id", "iso_code", "names"))


class TraitsRecord(Record):
    SHAPE: ClassVar[str] = "traits"

    is_anonymous_proxy: bool = False
    is_satellite_provider: bool = False

    @classmethod
    def from_value(cls, value: Any) -> Self:
        data = _map(value, cls.SHAPE)
        return cls._build(_pick(data, "is_anonymous_proxy", "is_satellite_provider"))


# --- Top-level record shapes ---


class Country(Record):
    """GeoIP2-Country / GeoLite2-Country record."""

    SHAPE: ClassVar[str] = "Country"

    continent: ContinentRecord = ContinentRecord()
    country: CountryRecord = CountryRecord()
    registered_country: CountryRecord = CountryRecord()
    represented_country: RepresentedCountryRecord = RepresentedCountryRecord()
    traits: TraitsRecord = TraitsRecord()

    @classmethod
    def from_value(cls, value: Any) -> Self:
        data = _map(value, cls.SHAPE)
        return cls._build(
            {
                "continent": ContinentRecord.from_value(data.get("continent")),
                "country": CountryRecord.from_value(data.get("country")),
                "registered_country": CountryRecord.from_value(data.get("registered_country")),
                "represented_country": RepresentedCountryRecord.from_value(data.get("represented_country")),
                "traits": TraitsRecord.from_value(data.get("traits")),
            }
        )


class City(Record):
    """GeoIP2-City / GeoLite2-City record."""

    SHAPE: ClassVar[str] = "City"

    city: CityRecord = CityRecord()
    continent: ContinentRecord = ContinentRecord()
    country: CountryRecord = CountryRecord()
    location: LocationRecord = LocationRecord()
    postal: PostalRecord = PostalRecord()
    registered_country: CountryRecord = CountryRecord()
    represented_country: RepresentedCountryRecord = RepresentedCountryRecord()
    subdivisions: list[SubdivisionRecord] = []
    traits: TraitsRecord = TraitsRecord()

    @classmethod
    def from_value(cls, value: Any) -> Self:
        data = _map(value, cls.SHAPE)
        subdivisions = _list(data.get("subdivisions"), "City.subdivisions")
        return cls._build(
            {
                "city": CityRecord.from_value(data.get("city")),
                "continent": ContinentRecord.from_value(data.get("continent")),
                "country": CountryRecord.from_value(data.get("country")),
                "location": LocationRecord.from_value(data.get("location")),
                "postal": PostalRecord.from_value(data.get("postal")),
                "registered_country": CountryRecord.from_value(data.get("registered_country")),
                "represented_country": RepresentedCountryRecord.from_value(data.get("represented_country")),
                "subdivisions": [SubdivisionRecord.from_value(item) for item in subdivisions],
                "traits": TraitsRecord.from_value(data.get("traits")),
            }
        )


class AnonymousIP(Record):
    SHAPE: ClassVar[str] = "AnonymousIP"

    is_anonymous: bool = False
    is_anonymous_vpn: bool = False
    is_hosting_provider: bool = False
    is_public_proxy: bool = False
    is_tor_exit_node: bool = False

    @classmethod
    def from_value(cls, value: Any) -> Self:
        data = _map(value, cls.SHAPE)
        return cls._build(
            _pick(
                data,
                "is_anonymous",
                "is_anonymous_vpn",
                "is_hosting_provider",
                "is_public_proxy",
                "is_tor_exit_node",
            )
        )


class ConnectionType(Record):
    SHAPE: ClassVar[str] = "ConnectionType"

    connection_type: str | None = None

    @classmethod
    def from_value(cls, value: Any) -> Self:
        return cls._build(_pick(_map(value, cls.SHAPE), "connection_type"))


class Domain(Record):
    SHAPE: ClassVar[str] = "Domain"

    domain: str | None = None

    @classmethod
    def from_value(cls, value: Any) -> Self:
        return cls._build(_pick(_map(value, cls.SHAPE), "domain"))


class ISP(Record):
    SHAPE: ClassVar[str] = "ISP"

    autonomous_system_number: int | None = None
    autonomous_system_organization: str | None = None
    isp: str | None = None
    organization: str | None = None

    @classmethod
    def from_value(cls, value: Any) -> Self:
        data = _map(value, cls.SHAPE)
        return cls._build(
            _pick(data, "autonomous_system_number", "autonomous_system_organization", "isp", "organization")
        )


class ASN(Record):
    SHAPE: ClassVar[str] = "ASN"

    autonomous_system_number: int | None = None
    autonomous_system_organization: str | None = None

    @classmethod
    def from_value(cls, value: Any) -> Self:
        data = _map(value, cls.SHAPE)
        return cls._build(_pick(data, "autonomous_system_number", "autonomous_system_organization"))
