from enum import Enum

from pydantic import ValidationError
from pydantic_settings import BaseSettings

from railbook.errors import ConfigurationError
from railbook.models.schemas import BookingRequest, is_travel_date


class WaitMode(str, Enum):
    FIXED = "fixed"
    EVENT_DRIVEN = "event_driven"
    HYBRID = "hybrid"


class Settings(BaseSettings):
    railway_username: str = ""
    railway_password: str = ""
    railway_base_url: str = "https://railapp.railway.gov.bd"

    # Booking inputs are kept raw here and validated by load_booking_request()
    search_from: str = ""
    search_to: str = ""
    search_date: str = ""
    search_class: str = ""
    train_name: str = ""
    preferred_seats: str = ""
    number_of_seats: str = ""

    passenger_name_prefix: str = "Passenger"
    passenger_age: int = 30
    passenger_gender: str = "Male"

    wait_mode: WaitMode = WaitMode.HYBRID
    headless: bool = False
    run_timeout_seconds: float = 900.0
    manual_step_max_wait_seconds: float = 600.0
    manual_step_poll_seconds: float = 2.0
    capture_diagnostics: bool = True
    artifacts_dir: str = "artifacts"

    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_phone_number: str = ""
    operator_phone_number: str = ""

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()

REQUIRED_BOOKING_FIELDS = {
    "SEARCH_FROM": "search_from",
    "SEARCH_TO": "search_to",
    "SEARCH_DATE": "search_date",
    "SEARCH_CLASS": "search_class",
    "TRAIN_NAME": "train_name",
    "PREFERRED_SEATS": "preferred_seats",
    "NUMBER_OF_SEATS": "number_of_seats",
}


def parse_seat_list(raw: str) -> tuple[str, ...]:
    """Split a comma-separated seat list, dropping blanks."""
    return tuple(seat.strip() for seat in raw.split(",") if seat.strip())


def load_booking_request(config: Settings | None = None) -> BookingRequest:
    """
    Build the validated, immutable BookingRequest for a run.

    Fails fast, before any browser is started, when a required variable is
    missing or malformed.

    Args:
        config: Settings to read from. Defaults to the module-level settings.

    Returns:
        The BookingRequest shared read-only by every stage of the run.

    Raises:
        ConfigurationError: naming the missing or invalid variable(s).
    """
    config = config or settings

    missing = [
        env_name
        for env_name, attr in REQUIRED_BOOKING_FIELDS.items()
        if not getattr(config, attr).strip()
    ]
    if missing:
        raise ConfigurationError(
            f"Missing required booking configuration: {', '.join(missing)}. "
            "Set them in the environment or the .env file."
        )

    try:
        seat_count = int(config.number_of_seats.strip())
    except ValueError:
        raise ConfigurationError("NUMBER_OF_SEATS must be a positive number") from None
    if seat_count <= 0:
        raise ConfigurationError("NUMBER_OF_SEATS must be a positive number")

    travel_date = config.search_date.strip()
    if not is_travel_date(travel_date):
        raise ConfigurationError(
            f"SEARCH_DATE must use the DD-MMM-YYYY format (e.g. 05-Mar-2026), got '{travel_date}'"
        )

    preferred = parse_seat_list(config.preferred_seats)
    if not preferred:
        raise ConfigurationError("PREFERRED_SEATS must list at least one seat")

    try:
        return BookingRequest(
            origin=config.search_from.strip(),
            destination=config.search_to.strip(),
            travel_date=travel_date,
            travel_class=config.search_class.strip(),
            train_name=config.train_name.strip(),
            preferred_seats=preferred,
            seat_count=seat_count,
        )
    except ValidationError as e:
        raise ConfigurationError(f"Invalid booking configuration: {e}") from e
