"""Delivery fare estimation.

Prices a prospective delivery from its distance, the vehicle class and the
package size. Amounts are whole currency units (TZS by default).

Rounding uses the built-in ``round`` throughout, so halves go to the even
neighbour: a raw subtotal of 8250 becomes 8200.
"""

import logging
import math
from enum import Enum
from typing import Self

from pydantic import BaseModel, Field

from delivery_core.core.exceptions import ValidationError
from delivery_core.geo.distance import Coordinates, DistanceProvider, HaversineDistanceProvider
from delivery_core.settings import FareSettings

logger = logging.getLogger(__name__)


class VehicleClass(str, Enum):
    """Courier vehicle tiers."""

    BODA = "boda"
    BAJAJI = "bajaji"
    GUTA = "guta"

    @classmethod
    def parse(cls, value: "str | VehicleClass | None") -> "VehicleClass":
        """Resolve a vehicle class, falling back to boda for anything unknown."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            logger.debug(f"Unknown vehicle class {value!r}, using boda rates")
            return cls.BODA


class PackageSize(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


class VehicleRates(BaseModel):
    """Static rate card for one vehicle class."""

    base_rate: int = Field(ge=0)
    per_km: int = Field(ge=0)
    min_fare: int = Field(ge=0)
    average_speed_kmh: float = Field(gt=0)


VEHICLE_RATES: dict[VehicleClass, VehicleRates] = {
    VehicleClass.BODA: VehicleRates(base_rate=2000, per_km=500, min_fare=1000, average_speed_kmh=30),
    VehicleClass.BAJAJI: VehicleRates(
        base_rate=3000, per_km=750, min_fare=2000, average_speed_kmh=25
    ),
    VehicleClass.GUTA: VehicleRates(base_rate=5000, per_km=1000, min_fare=5000, average_speed_kmh=20),
}

SIZE_MULTIPLIERS: dict[PackageSize, float] = {
    PackageSize.SMALL: 1.0,
    PackageSize.MEDIUM: 1.5,
    PackageSize.LARGE: 1.8,
}

PROMO_CODES: dict[str, float] = {
    "WELCOME50": 0.5,
}


def size_multiplier(package_size: "str | PackageSize | None") -> float:
    """Multiplier for a package size; 1.0 for anything unknown."""
    if isinstance(package_size, PackageSize):
        return SIZE_MULTIPLIERS[package_size]
    try:
        return SIZE_MULTIPLIERS[PackageSize(str(package_size).strip().lower())]
    except ValueError:
        logger.debug(f"Unknown package size {package_size!r}, using multiplier 1.0")
        return 1.0


class InvalidPromoCodeError(ValidationError):
    """Promo code is unknown or a promo was already applied."""

    pass


class FareQuote(BaseModel):
    """Priced estimate for a prospective delivery."""

    base_fare: int = Field(ge=0)
    distance_fare: int = Field(ge=0)
    package_size_multiplier: float = Field(gt=0)
    subtotal: int = Field(ge=0)
    service_fee: int = Field(ge=0)
    total: int = Field(ge=0)
    distance_km: float = Field(ge=0)
    estimated_time_range: str
    discount: int | None = None
    promo_code: str | None = None

    @classmethod
    def fallback(cls) -> Self:
        """Quote shown when the distance lookup blows up."""
        return cls(
            base_fare=3500,
            distance_fare=1500,
            package_size_multiplier=1.0,
            subtotal=5000,
            service_fee=750,
            total=5750,
            distance_km=5.0,
            estimated_time_range="20-30 min",
        )


class FareEngine:
    """Calculates delivery fares from distance, vehicle class and package size."""

    def __init__(
        self,
        distance_provider: DistanceProvider | None = None,
        settings: FareSettings | None = None,
    ) -> None:
        self.distance_provider = distance_provider or HaversineDistanceProvider()
        self.settings = settings or FareSettings()

    def pre_multiplier_total(
        self, distance_km: float, vehicle_class: "str | VehicleClass | None"
    ) -> float:
        """Base plus distance charge, floored at the vehicle minimum fare."""
        self._check_distance(distance_km)
        rates = VEHICLE_RATES[VehicleClass.parse(vehicle_class)]
        return max(rates.base_rate + self._distance_fare_raw(distance_km, rates), rates.min_fare)

    def quote(
        self,
        distance_km: float,
        vehicle_class: "str | VehicleClass | None" = VehicleClass.BODA,
        package_size: "str | PackageSize | None" = PackageSize.SMALL,
    ) -> FareQuote:
        """Price a delivery of a known distance.

        The minimum-fare floor applies before the size multiplier. The
        ``distance_fare`` on the quote is a display figure computed on its own
        and is not guaranteed to add up to ``subtotal - base_fare``.
        """
        vehicle = VehicleClass.parse(vehicle_class)
        rates = VEHICLE_RATES[vehicle]
        multiplier = size_multiplier(package_size)

        try:
            distance_fare_raw = self._distance_fare_raw(distance_km, rates)
            subtotal = round(
                self.pre_multiplier_total(distance_km, vehicle) * multiplier / 100
            ) * 100
            service_fee = round(subtotal * self.settings.service_fee_rate)
            distance_fare = round(distance_fare_raw * multiplier)
            estimated_time_range = self.estimate_time_range(distance_km, vehicle)
        except OverflowError as e:
            # Finite input whose price no longer fits a float
            raise ValueError(f"Distance too large to price: {distance_km} km") from e

        return FareQuote(
            base_fare=rates.base_rate,
            distance_fare=distance_fare,
            package_size_multiplier=multiplier,
            subtotal=subtotal,
            service_fee=service_fee,
            total=subtotal + service_fee,
            distance_km=round(distance_km, 1),
            estimated_time_range=estimated_time_range,
        )

    def estimate_time_range(
        self, distance_km: float, vehicle_class: "str | VehicleClass | None" = VehicleClass.BODA
    ) -> str:
        """Formatted ETA band such as ``"15-25 min"``."""
        rates = VEHICLE_RATES[VehicleClass.parse(vehicle_class)]
        travel_min = (distance_km / rates.average_speed_kmh) * 60
        total_min = self.settings.handling_minutes + travel_min
        min_time = max(10, round(total_min * 0.8))
        max_time = round(total_min * 1.2)
        return f"{min_time}-{max_time} min"

    async def calculate_fare(
        self,
        pickup: Coordinates | None,
        dropoff: Coordinates | None,
        vehicle_class: "str | VehicleClass | None" = VehicleClass.BODA,
        package_size: "str | PackageSize | None" = PackageSize.SMALL,
    ) -> FareQuote:
        """Look up the distance and price the delivery. Never raises."""
        try:
            distance_km = await self._resolve_distance(pickup, dropoff)
            return self.quote(distance_km, vehicle_class, package_size)
        except Exception:
            logger.exception("Fare calculation failed, returning fallback quote")
            return FareQuote.fallback()

    def apply_discount(self, quote: FareQuote, rate: float) -> FareQuote:
        """Discount the subtotal; the service fee stays on the undiscounted subtotal."""
        if not 0.0 <= rate <= 1.0:
            raise ValueError("Discount rate must be between 0 and 1")
        return quote.model_copy(
            update={
                "discount": round(quote.subtotal * rate),
                "total": round(quote.subtotal * (1 - rate)) + quote.service_fee,
            }
        )

    def apply_promo_code(self, quote: FareQuote, code: str) -> FareQuote:
        normalized = code.strip().upper()
        if quote.promo_code is not None:
            raise InvalidPromoCodeError(
                "A promo code is already applied", details={"promo_code": quote.promo_code}
            )
        if normalized not in PROMO_CODES:
            raise InvalidPromoCodeError("Invalid promo code", details={"promo_code": normalized})

        discounted = self.apply_discount(quote, PROMO_CODES[normalized])
        return discounted.model_copy(update={"promo_code": normalized})

    def format_price(self, amount: int | float | None) -> str:
        """``format_price`` in the configured currency."""
        return format_price(amount, currency=self.settings.currency)

    async def _resolve_distance(
        self, pickup: Coordinates | None, dropoff: Coordinates | None
    ) -> float:
        default = self.settings.default_distance_km
        if pickup is None or dropoff is None:
            logger.warning(f"Missing location coordinates, using default distance {default} km")
            return default

        distance_km = await self.distance_provider.calculate_distance_km(pickup, dropoff)
        if distance_km is None or not math.isfinite(distance_km) or distance_km < 0:
            logger.warning(
                f"Distance provider returned {distance_km!r}, using default distance {default} km"
            )
            return default
        return float(distance_km)

    def _distance_fare_raw(self, distance_km: float, rates: VehicleRates) -> float:
        billable_km = max(0.0, distance_km - self.settings.free_distance_km)
        return billable_km * rates.per_km

    @staticmethod
    def _check_distance(distance_km: float) -> None:
        if not math.isfinite(distance_km) or distance_km < 0:
            raise ValueError("Distance must be a non-negative finite number")


def format_price(amount: int | float | None, currency: str = "TZS") -> str:
    """Format an amount with thousands separators, e.g. ``"TZS 5,000"``."""
    if amount is None:
        return f"{currency} 0"
    return f"{currency} {amount:,}"


def format_distance(distance_km: float) -> str:
    if distance_km < 1:
        return f"{round(distance_km * 1000)} m"
    return f"{distance_km:.1f} km"
