"""
Direct HTTP access to the railway site's backend.

The site does not document its API, so every call walks a list of candidate
endpoints and keeps the first one that answers. This path runs alongside the
browser flow: `verify_endpoints()` reports which endpoints exist, and `book()`
attempts a booking without a browser.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

import requests

from railbook.config import settings
from railbook.errors import TargetUnavailable
from railbook.models.flow import SeatAllocationPlan, SeatSource
from railbook.models.schemas import BookingRequest
from railbook.services.seat_allocator import backup_plans, candidate_plans

logger = logging.getLogger(__name__)

LOGIN_ENDPOINTS = (
    "/api/auth/login",
    "/api/login",
    "/auth/login",
    "/api/v1/auth/login",
    "/api/user/login",
)
SEARCH_ENDPOINTS = (
    "/api/search",
    "/api/trains/search",
    "/api/v1/search",
    "/api/booking/search",
)
SEARCH_DISCOVERY_ENDPOINTS = SEARCH_ENDPOINTS + ("/api/stations", "/api/routes")
PROFILE_ENDPOINTS = (
    "/api/user/profile",
    "/api/profile",
    "/api/v1/user/profile",
    "/api/auth/profile",
    "/api/user/me",
    "/api/me",
)
BOOKING_DISCOVERY_ENDPOINTS = (
    "/api/booking",
    "/api/tickets",
    "/api/v1/booking",
    "/api/reservations",
    "/api/bookings",
    "/api/orders",
)
BOOKING_ENDPOINTS = (
    "/api/booking",
    "/api/book",
    "/api/v1/booking",
    "/api/tickets/book",
    "/api/reservations",
)

# Statuses meaning "the endpoint exists" for a GET probe, per group. 2xx always counts.
LOGIN_EXISTS = (403, 405)
SEARCH_EXISTS = (401, 403, 405)
PROFILE_EXISTS = (401, 403)
BOOKING_EXISTS = (401, 403, 405)

TOKEN_KEYS = ("token", "access_token", "accessToken", "authToken")
NESTED_TOKEN_KEYS = ("token", "access_token")
TRAIN_NAME_KEYS = ("name", "trainName", "train_name")
TRAIN_ID_KEYS = ("id", "trainId", "train_id")

JSON_HEADERS = {"Content-Type": "application/json", "Accept": "application/json"}


@dataclass
class ProbeResult:
    endpoint: str
    status: int | None
    exists: bool
    error: str | None = None


@dataclass
class SearchPageCheck:
    url: str
    status: int | None
    contains_train_info: bool = False


@dataclass
class ApiBookingResult:
    """Outcome of an HTTP booking attempt."""

    success: bool
    endpoint: str | None = None
    plan: SeatAllocationPlan | None = None
    response: Any = None
    reason: str | None = None
    attempts: list[str] = field(default_factory=list)


def extract_token(data: Any) -> str | None:
    """Pull an auth token out of a login response, wherever the site put it."""
    if not isinstance(data, dict):
        return None
    for key in TOKEN_KEYS:
        if data.get(key):
            return str(data[key])
    nested = data.get("data")
    if isinstance(nested, dict):
        for key in NESTED_TOKEN_KEYS:
            if nested.get(key):
                return str(nested[key])
    return None


def _first_value(record: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        if record.get(key):
            return record[key]
    return None


def find_train(trains: list[Any], train_name: str) -> dict[str, Any] | None:
    """The train whose name contains `train_name`, else the first train listed."""
    trains = [train for train in trains if isinstance(train, dict)]
    for train in trains:
        name = _first_value(train, TRAIN_NAME_KEYS)
        if isinstance(name, str) and train_name in name:
            return train
    if trains:
        logger.info(f"Train {train_name} not in search results, using the first listed train")
        return trains[0]
    return None


def build_booking_payload(
    train: dict[str, Any], request: BookingRequest, plan: SeatAllocationPlan
) -> dict[str, Any]:
    """
    JSON body for a booking attempt.

    Field names are unknown, so seats and counts are sent under every alias the
    site might read. Backup plans also ask the server to pick seats itself.
    """
    seats = list(plan.seats)
    payload: dict[str, Any] = {
        "trainId": _first_value(train, TRAIN_ID_KEYS),
        "trainName": _first_value(train, TRAIN_NAME_KEYS),
        "seats": seats,
        "seatNumbers": seats,
        "numberOfSeats": plan.count,
        "seatCount": plan.count,
        "coach": request.travel_class,
        "class": request.travel_class,
    }
    if plan.source == SeatSource.PREFERRED:
        payload["preferredSeats"] = seats
    else:
        payload["anyAvailableSeats"] = True
        payload["autoSelectSeats"] = True
    return payload


class RailwayApiClient:
    """requests-based client for the railway backend. One instance per session."""

    def __init__(
        self,
        base_url: str | None = None,
        session: requests.Session | None = None,
        timeout: float = 15.0,
    ) -> None:
        self.base_url = (base_url or settings.railway_base_url).rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": "Mozilla/5.0"})
        self.timeout = timeout

    def _url(self, endpoint: str) -> str:
        return f"{self.base_url}{endpoint}"

    @staticmethod
    def _headers(token: str | None = None) -> dict[str, str]:
        headers = dict(JSON_HEADERS)
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def probe(
        self,
        endpoint: str,
        existence_statuses: tuple[int, ...] = (),
        method: str = "GET",
    ) -> ProbeResult:
        try:
            response = self.session.request(
                method, self._url(endpoint), headers=self._headers(), timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.warning(f"{method} {endpoint} failed: {e}")
            return ProbeResult(endpoint=endpoint, status=None, exists=False, error=str(e))

        exists = response.ok or response.status_code in existence_statuses
        logger.info(f"{method} {endpoint}: {response.status_code}{' (exists)' if exists else ''}")
        return ProbeResult(endpoint=endpoint, status=response.status_code, exists=exists)

    def probe_group(
        self, endpoints: tuple[str, ...], existence_statuses: tuple[int, ...] = ()
    ) -> list[ProbeResult]:
        return [self.probe(endpoint, existence_statuses) for endpoint in endpoints]

    def find_endpoint(
        self,
        endpoints: tuple[str, ...],
        existence_statuses: tuple[int, ...] = (),
        method: str = "GET",
    ) -> str | None:
        """First endpoint whose probe status shows it exists, or None."""
        for endpoint in endpoints:
            if self.probe(endpoint, existence_statuses, method).exists:
                return endpoint
        return None

    def authenticate(self, username: str, password: str) -> str:
        """
        Log in through the first login endpoint that returns a token.

        Raises:
            TargetUnavailable: no login endpoint produced a token.
        """
        payload = {
            "mobile": username,
            "password": password,
            "username": username,
            "phone": username,
            "mobileNumber": username,
        }
        for endpoint in LOGIN_ENDPOINTS:
            try:
                response = self.session.post(
                    self._url(endpoint), json=payload, headers=self._headers(), timeout=self.timeout
                )
            except requests.RequestException as e:
                logger.warning(f"Login attempt failed for {endpoint}: {e}")
                continue

            logger.info(f"Login {endpoint}: {response.status_code}")
            if not response.ok:
                continue
            try:
                token = extract_token(response.json())
            except ValueError:
                logger.warning(f"Login {endpoint} returned a non-JSON body")
                continue
            if token:
                logger.info(f"Authenticated via {endpoint}")
                return token

        raise TargetUnavailable("Could not authenticate with any known login endpoint")

    def search_trains(self, request: BookingRequest, token: str | None = None) -> list[Any] | None:
        """Search via POST (JSON body) then GET (query params) on each search endpoint."""
        for endpoint in SEARCH_ENDPOINTS:
            url = self._url(endpoint)
            attempts = (
                ("POST", {"json": request.search_payload()}),
                ("GET", {"params": request.search_params()}),
            )
            for method, body in attempts:
                try:
                    response = self.session.request(
                        method, url, headers=self._headers(token), timeout=self.timeout, **body
                    )
                except requests.RequestException as e:
                    logger.warning(f"Search {method} {endpoint} failed: {e}")
                    continue

                logger.info(f"Search {method} {endpoint}: {response.status_code}")
                if response.status_code in (401, 403):
                    logger.info(f"Search endpoint {endpoint} requires authentication")
                if not response.ok:
                    continue
                try:
                    results = response.json()
                except ValueError:
                    continue
                if isinstance(results, dict) and isinstance(results.get("data"), list):
                    results = results["data"]
                if isinstance(results, list):
                    return results
        return None

    def book(self, request: BookingRequest, token: str | None = None) -> ApiBookingResult:
        """
        Book the configured train over HTTP.

        Each booking endpoint gets the preferred seats first. A 400 usually means
        the seats are gone, so the same endpoint is retried with each backup
        plan before moving on.
        """
        trains = self.search_trains(request, token)
        if not trains:
            return ApiBookingResult(success=False, reason="No search results")

        train = find_train(trains, request.train_name)
        if train is None:
            return ApiBookingResult(success=False, reason="No train in search results")
        first_plan = candidate_plans(request.preferred_seats, request.seat_count)[0]
        fallback_plans = backup_plans(request.seat_count)
        attempts: list[str] = []

        for endpoint in BOOKING_ENDPOINTS:
            response = self._post_booking(endpoint, train, request, first_plan, token, attempts)
            if response is None:
                continue
            if response.ok:
                return self._booked(endpoint, first_plan, response, attempts)
            if response.status_code in (401, 403):
                logger.info(f"Booking endpoint {endpoint} requires authentication")
                continue
            if response.status_code != 400:
                logger.info(
                    f"Booking failed for {endpoint}: {response.status_code} - {response.text[:200]}"
                )
                continue

            logger.info(f"Booking {endpoint} rejected the seats (400), trying backup plans")
            for plan in fallback_plans:
                if plan == first_plan:
                    continue
                retry = self._post_booking(endpoint, train, request, plan, token, attempts)
                if retry is not None and retry.ok:
                    return self._booked(endpoint, plan, retry, attempts)

        return ApiBookingResult(
            success=False, reason="No booking endpoint accepted", attempts=attempts
        )

    def _post_booking(
        self,
        endpoint: str,
        train: dict[str, Any],
        request: BookingRequest,
        plan: SeatAllocationPlan,
        token: str | None,
        attempts: list[str],
    ) -> requests.Response | None:
        attempts.append(f"{endpoint} [{plan.source.value}]")
        try:
            response = self.session.post(
                self._url(endpoint),
                json=build_booking_payload(train, request, plan),
                headers=self._headers(token),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"Booking {endpoint} ({plan.source.value}) failed: {e}")
            return None
        logger.info(f"Booking {endpoint} ({plan.source.value}): {response.status_code}")
        return response

    @staticmethod
    def _booked(
        endpoint: str, plan: SeatAllocationPlan, response: requests.Response, attempts: list[str]
    ) -> ApiBookingResult:
        try:
            body = response.json()
        except ValueError:
            body = response.text
        logger.info(f"Booking accepted by {endpoint} with {plan.source.value} seats")
        return ApiBookingResult(
            success=True, endpoint=endpoint, plan=plan, response=body, attempts=attempts
        )

    def check_search_page(self, request: BookingRequest) -> SearchPageCheck:
        """Fetch the public search page and look for the train in the HTML."""
        url = f"{self.base_url}/search"
        try:
            response = self.session.get(url, params=request.search_params(), timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"Search page request failed: {e}")
            return SearchPageCheck(url=url, status=None)

        content = response.text if response.ok else ""
        found = any(
            marker in content for marker in (request.train_name, "Train Details", "BOOK NOW")
        )
        logger.info(f"Search page {response.url}: {response.status_code}, train info: {found}")
        return SearchPageCheck(
            url=response.url, status=response.status_code, contains_train_info=found
        )

    async def verify_endpoints(self) -> dict[str, list[ProbeResult]]:
        """
        Probe every endpoint group concurrently.

        Each group runs in its own thread with its own client, so no HTTP
        session is shared between groups.
        """
        groups = {
            "login": (LOGIN_ENDPOINTS, LOGIN_EXISTS),
            "search": (SEARCH_DISCOVERY_ENDPOINTS, SEARCH_EXISTS),
            "profile": (PROFILE_ENDPOINTS, PROFILE_EXISTS),
            "booking": (BOOKING_DISCOVERY_ENDPOINTS, BOOKING_EXISTS),
        }

        def probe_with_own_client(
            endpoints: tuple[str, ...], statuses: tuple[int, ...]
        ) -> list[ProbeResult]:
            client = RailwayApiClient(self.base_url, timeout=self.timeout)
            try:
                return client.probe_group(endpoints, statuses)
            finally:
                client.session.close()

        results = await asyncio.gather(
            *(
                asyncio.to_thread(probe_with_own_client, endpoints, statuses)
                for endpoints, statuses in groups.values()
            )
        )
        report = dict(zip(groups.keys(), results))
        for name, probes in report.items():
            found = [probe.endpoint for probe in probes if probe.exists]
            logger.info(f"Verified {name} endpoints: {found or 'none'}")
        return report
