import re
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

TRAVEL_DATE_FORMAT = "%d-%b-%Y"
# strptime alone also accepts "5-Mar-2026" and "05-MAR-2026"
TRAVEL_DATE_PATTERN = re.compile(r"\d{2}-[A-Z][a-z]{2}-\d{4}")


def is_travel_date(value: str) -> bool:
    """True for a real date written exactly as DD-MMM-YYYY, e.g. 05-Mar-2026."""
    if not TRAVEL_DATE_PATTERN.fullmatch(value):
        return False
    try:
        datetime.strptime(value, TRAVEL_DATE_FORMAT)
    except ValueError:
        return False
    return True


class BookingRequest(BaseModel):
    """Everything one booking run needs; built once and never mutated."""

    model_config = ConfigDict(frozen=True)

    origin: str = Field(..., min_length=1, description="Departure station (fromcity)")
    destination: str = Field(..., min_length=1, description="Arrival station (tocity)")
    travel_date: str = Field(..., description="Journey date as DD-MMM-YYYY, e.g. 05-Mar-2026")
    travel_class: str = Field(..., min_length=1, description="Seat class code, e.g. S_CHAIR")
    train_name: str = Field(..., min_length=1, description="Train name, e.g. PADMA EXPRESS")
    preferred_seats: tuple[str, ...] = Field(
        default=(), description="Seat identifiers to try first, in order"
    )
    seat_count: int = Field(..., gt=0, description="Number of seats to book")

    @field_validator("travel_date")
    @classmethod
    def _check_travel_date(cls, value: str) -> str:
        if not is_travel_date(value):
            raise ValueError(f"travel_date must be DD-MMM-YYYY, got '{value}'")
        return value

    def search_params(self) -> dict[str, str]:
        """Query parameters used by the site's /search page."""
        return {
            "fromcity": self.origin,
            "tocity": self.destination,
            "doj": self.travel_date,
            "class": self.travel_class,
        }

    def search_payload(self) -> dict[str, str]:
        """JSON body for the API search probes (site field names are unknown, so send aliases)."""
        return {
            "from": self.origin,
            "to": self.destination,
            "date": self.travel_date,
            "class": self.travel_class,
            "fromStation": self.origin,
            "toStation": self.destination,
            "journeyDate": self.travel_date,
            "trainClass": self.travel_class,
        }
