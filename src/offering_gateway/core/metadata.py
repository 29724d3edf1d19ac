# Offering metadata guessed from the semantic annotations of Thing Descriptions
from typing import Any, List, Mapping, Optional, Sequence
from ..models.offering import Boundary, LatLng, Money, Price, SpatialExtent
from ..models.thing import Thing
from ..utils.logging import get_logger

logger = get_logger(__name__)

# TD metadata keys (full URIs)
CATEGORY = "https://schema.org/category"
LICENSE = "https://schema.org/license"
PRICE = "https://schema.org/priceSpecification"
PRICING_MODEL = "http://schema.big-iot.org/core/pricingModel"
MONEY = "money"
AMOUNT = "https://schema.org/amount"
CURRENCY = "https://schema.org/currency"
SPATIAL_EXTENT = "https://schema.org/spatialCoverage"
CITY = "https://schema.org/address"
BOUNDARY = "boundary"
LAT_LONG_1 = "l1"
LAT_LONG_2 = "l2"
B_LATITUDE = "lat"
B_LONGITUDE = "lng"
LATITUDE = "https://schema.org/latitude"
LONGITUDE = "https://schema.org/longitude"

PROPOSED_PREFIX = "proposed:"
BIGIOT_URN_PREFIX = "urn:big-iot:"
ACCESS_INTERFACE_TYPE = "http://schema.big-iot.org/core/accessInterfaceType"

LICENSES = [
    "OPEN_DATA_LICENSE",
    "CREATIVE_COMMONS",
    "NON_COMMERCIAL_DATA_LICENSE",
    "PROJECT_INTERNAL_USE_ONLY",
]
PRICING_MODELS = ["FREE", "PER_ACCESS", "PER_MESSAGE", "PER_MONTH", "PER_BYTE"]
CURRENCIES = ["EUR", "USD"]
FREE = "FREE"

DEFAULT_CATEGORY = "urn:big-iot:allOfferingsCategory"
DEFAULT_LICENSE = "CREATIVE_COMMONS"


def default_extent() -> SpatialExtent:
    return SpatialExtent(city="", boundary=Boundary(l1=LatLng(lat=90, lng=180), l2=LatLng(lat=-90, lng=-180)))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class MetadataManager:
    """
    Guesses category, license, price and spatial extent of an Offering.
    Interaction-level metadata wins over Thing-level metadata, which wins
    over defaults. Merged and aggregated routes combine the metadata of
    every interaction or Thing involved.
    """

    # --- Validity checks (TD format, full URIs)

    @staticmethod
    def make_category_valid(category: str) -> str:
        if category.startswith(BIGIOT_URN_PREFIX) or category.startswith(PROPOSED_PREFIX):
            return category
        return PROPOSED_PREFIX + category

    @staticmethod
    def is_license_valid(license: Any) -> bool:
        return isinstance(license, str) and license in LICENSES

    @staticmethod
    def is_price_valid(price: Any) -> bool:
        if not isinstance(price, Mapping) or price.get(PRICING_MODEL) not in PRICING_MODELS:
            return False
        if price[PRICING_MODEL] == FREE:
            return True
        money = price.get(MONEY)
        return (isinstance(money, Mapping) and money.get(CURRENCY) in CURRENCIES
                and _is_number(money.get(AMOUNT)))

    @staticmethod
    def is_lat_long_valid(point: Any) -> bool:
        return isinstance(point, Mapping) and _is_number(point.get(B_LATITUDE)) and _is_number(point.get(B_LONGITUDE))

    @classmethod
    def is_boundary_valid(cls, boundary: Any) -> bool:
        return (isinstance(boundary, Mapping)
                and cls.is_lat_long_valid(boundary.get(LAT_LONG_1))
                and cls.is_lat_long_valid(boundary.get(LAT_LONG_2)))

    @classmethod
    def is_spatial_extent_valid(cls, extent: Any) -> bool:
        if not isinstance(extent, Mapping):
            return False
        city = extent.get(CITY)
        return (isinstance(city, str) and city != "") or cls.is_boundary_valid(extent.get(BOUNDARY))

    # --- Conversions from the TD format

    @staticmethod
    def copy_price(td_price: Mapping[str, Any]) -> Price:
        money = td_price.get(MONEY)
        return Price(
            pricing_model=td_price[PRICING_MODEL],
            money=Money(amount=money[AMOUNT], currency=money[CURRENCY]) if money else None
        )

    @classmethod
    def copy_spatial_extent(cls, td_extent: Mapping[str, Any]) -> SpatialExtent:
        boundary = td_extent.get(BOUNDARY)
        return SpatialExtent(
            city=td_extent.get(CITY) or "",
            boundary=Boundary(
                l1=LatLng(lat=boundary[LAT_LONG_1][B_LATITUDE], lng=boundary[LAT_LONG_1][B_LONGITUDE]),
                l2=LatLng(lat=boundary[LAT_LONG_2][B_LATITUDE], lng=boundary[LAT_LONG_2][B_LONGITUDE]),
            ) if cls.is_boundary_valid(boundary) else None
        )

    @staticmethod
    def spatial_extent_from_other_formats(metadata: Mapping[str, Any]) -> Optional[SpatialExtent]:
        """Plain schema.org address or latitude/longitude instead of a spatialCoverage block"""
        if isinstance(metadata.get(CITY), str):
            return SpatialExtent(city=metadata[CITY])
        if _is_number(metadata.get(LATITUDE)) and _is_number(metadata.get(LONGITUDE)):
            point = LatLng(lat=metadata[LATITUDE], lng=metadata[LONGITUDE])
            return SpatialExtent(city="", boundary=Boundary(l1=point, l2=point))
        return None

    # --- Combination tools

    @staticmethod
    def merge_boundaries(b1: Boundary, b2: Boundary) -> Boundary:
        lats = [b1.l1.lat, b1.l2.lat, b2.l1.lat, b2.l2.lat]
        lngs = [b1.l1.lng, b1.l2.lng, b2.l1.lng, b2.l2.lng]
        return Boundary(l1=LatLng(lat=min(lats), lng=min(lngs)), l2=LatLng(lat=max(lats), lng=max(lngs)))

    @staticmethod
    def sum_prices(p1: Optional[Price], p2: Optional[Price]) -> Optional[Price]:
        """Sum two prices. None means the pricing models are incompatible."""
        p1 = p1 or Price(pricing_model=FREE)
        p2 = p2 or Price(pricing_model=FREE)
        if p1.pricing_model == FREE:
            return p2
        if p2.pricing_model == FREE:
            return p1
        if p1.pricing_model != p2.pricing_model or not p1.money or not p2.money:
            return None
        return Price(
            pricing_model=p1.pricing_model,
            money=Money(amount=p1.money.amount + p2.money.amount, currency=p1.money.currency)
        )

    @classmethod
    def average_price(cls, prices: Sequence[Price]) -> Price:
        total: Optional[Price] = Price(pricing_model=FREE)
        for price in prices:
            total = cls.sum_prices(total, price)
            if total is None:
                logger.warning("Incompatible prices across aggregated Things, defaulting to FREE")
                return Price(pricing_model=FREE)
        if total.money and prices:
            total.money.amount /= len(prices)
            return total
        return Price(pricing_model=FREE)

    @classmethod
    def combine_extents(cls, extents: Sequence[SpatialExtent]) -> Optional[SpatialExtent]:
        """Common city (if all agree) and a boundary containing every extent"""
        cities = {extent.city for extent in extents}
        city = cities.pop() if len(cities) == 1 else ""
        boundary: Optional[Boundary] = None
        for extent in extents:
            if extent.boundary is not None:
                boundary = extent.boundary if boundary is None else cls.merge_boundaries(boundary, extent.boundary)
        if boundary is None and not city:
            return None
        return SpatialExtent(city=city, boundary=boundary)

    # --- Guessers

    @classmethod
    def guess_category(cls, thing: Thing, interaction: Any) -> str:
        for metadata in (interaction.metadata(), thing.metadata()):
            if isinstance(metadata.get(CATEGORY), str):
                return cls.make_category_valid(metadata[CATEGORY])
        return DEFAULT_CATEGORY

    @classmethod
    def guess_merged_category(cls, thing: Thing) -> str:
        category = thing.metadata().get(CATEGORY)
        return cls.make_category_valid(category) if isinstance(category, str) else DEFAULT_CATEGORY

    @classmethod
    def guess_aggregated_category(cls, things: Sequence[Thing], property_names: Sequence[str],
                                  action_name: Optional[str] = None) -> str:
        categories = {cls._per_thing(cls.guess_category, cls.guess_merged_category, thing, property_names, action_name)
                      for thing in things}
        return categories.pop() if len(categories) == 1 else DEFAULT_CATEGORY

    @classmethod
    def guess_license(cls, thing: Thing, interaction: Any) -> str:
        for metadata in (interaction.metadata(), thing.metadata()):
            if cls.is_license_valid(metadata.get(LICENSE)):
                return metadata[LICENSE]
        return DEFAULT_LICENSE

    @classmethod
    def guess_merged_license(cls, thing: Thing) -> str:
        # The most restrictive license among the properties applies
        indexes = [LICENSES.index(prop.metadata()[LICENSE]) for prop in thing.properties.values()
                   if cls.is_license_valid(prop.metadata().get(LICENSE))]
        return LICENSES[max(indexes)] if indexes else DEFAULT_LICENSE

    @classmethod
    def guess_aggregated_license(cls, things: Sequence[Thing], property_names: Sequence[str],
                                 action_name: Optional[str] = None) -> str:
        licenses = [cls._per_thing(cls.guess_license, cls.guess_merged_license, thing, property_names, action_name)
                    for thing in things]
        return LICENSES[max(LICENSES.index(value) for value in licenses)] if licenses else DEFAULT_LICENSE

    @classmethod
    def guess_price(cls, thing: Thing, interaction: Any) -> Price:
        for metadata in (interaction.metadata(), thing.metadata()):
            if cls.is_price_valid(metadata.get(PRICE)):
                return cls.copy_price(metadata[PRICE])
        return Price(pricing_model=FREE)

    @classmethod
    def guess_merged_price(cls, thing: Thing) -> Price:
        total: Optional[Price] = Price(pricing_model=FREE)
        count = 0
        for prop in thing.properties.values():
            td_price = prop.metadata().get(PRICE)
            if cls.is_price_valid(td_price):
                total = cls.sum_prices(total, cls.copy_price(td_price))
                if total is None:
                    break
            count += 1
        if total is not None:
            if total.pricing_model == "PER_BYTE" and total.money and count:
                total.money.amount /= count
            return total
        if cls.is_price_valid(thing.metadata().get(PRICE)):
            return cls.copy_price(thing.metadata()[PRICE])
        return Price(pricing_model=FREE)

    @classmethod
    def guess_aggregated_price(cls, things: Sequence[Thing], property_names: Sequence[str],
                               action_name: Optional[str] = None) -> Price:
        return cls.average_price([
            cls._per_thing(cls.guess_price, cls.guess_merged_price, thing, property_names, action_name)
            for thing in things
        ])

    @classmethod
    def guess_spatial_extent(cls, thing: Thing, interaction: Any) -> SpatialExtent:
        interaction_metadata, thing_metadata = interaction.metadata(), thing.metadata()
        for metadata in (interaction_metadata, thing_metadata):
            if cls.is_spatial_extent_valid(metadata.get(SPATIAL_EXTENT)):
                return cls.copy_spatial_extent(metadata[SPATIAL_EXTENT])
        other = (cls.spatial_extent_from_other_formats(interaction_metadata)
                 or cls.spatial_extent_from_other_formats(thing_metadata))
        return other or default_extent()

    @classmethod
    def guess_merged_spatial_extent(cls, thing: Thing) -> SpatialExtent:
        extents: List[SpatialExtent] = []
        for prop in thing.properties.values():
            metadata = prop.metadata()
            if cls.is_spatial_extent_valid(metadata.get(SPATIAL_EXTENT)):
                extents.append(cls.copy_spatial_extent(metadata[SPATIAL_EXTENT]))
            else:
                other = cls.spatial_extent_from_other_formats(metadata)
                if other is None:
                    break
                extents.append(other)
        else:
            # Every property is located
            combined = cls.combine_extents(extents)
            if combined is not None:
                return combined
        metadata = thing.metadata()
        if cls.is_spatial_extent_valid(metadata.get(SPATIAL_EXTENT)):
            return cls.copy_spatial_extent(metadata[SPATIAL_EXTENT])
        return cls.spatial_extent_from_other_formats(metadata) or default_extent()

    @classmethod
    def guess_aggregated_spatial_extent(cls, things: Sequence[Thing], property_names: Sequence[str],
                                        action_name: Optional[str] = None) -> SpatialExtent:
        extents = [
            cls._per_thing(cls.guess_spatial_extent, cls.guess_merged_spatial_extent, thing, property_names, action_name)
            for thing in things
        ]
        return cls.combine_extents(extents) or default_extent()

    @staticmethod
    def _per_thing(single, merged, thing: Thing, property_names: Sequence[str], action_name: Optional[str]):
        if action_name is not None and not property_names:
            return single(thing, thing.actions[action_name])
        if len(property_names) > 1:
            return merged(thing)
        return single(thing, thing.properties[property_names[0]])
