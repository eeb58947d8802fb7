import pytest

from railbook.config import Settings
from railbook.models.schemas import BookingRequest
from railbook.services.deadline import Deadline
from railbook.services.stage_executor import StageContext
from railbook.services.strategy_resolver import StrategyResolver
from tests.fixtures.fake_page import FakePage


@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from the developer's .env, with credentials and no artifacts."""
    return Settings(
        _env_file=None,
        railway_username="01711000000",
        railway_password="pa#ssword",
        capture_diagnostics=False,
        manual_step_poll_seconds=0.01,
        manual_step_max_wait_seconds=0.05,
        twilio_account_sid="",
        twilio_auth_token="",
    )


@pytest.fixture
def booking_request() -> BookingRequest:
    return BookingRequest(
        origin="Dhaka",
        destination="Rajshahi",
        travel_date="05-Mar-2026",
        travel_class="S_CHAIR",
        train_name="PADMA EXPRESS",
        preferred_seats=("KA-1", "KA-2"),
        seat_count=2,
    )


@pytest.fixture
def page() -> FakePage:
    return FakePage()


@pytest.fixture
def ctx(page: FakePage, booking_request: BookingRequest, test_settings: Settings) -> StageContext:
    return StageContext(
        page=page,
        request=booking_request,
        settings=test_settings,
        resolver=StrategyResolver(page, outcome_timeout=0.1),
        deadline=Deadline(120.0),
    )
