"""
Centralized DOM schema for the Bangladesh Railway web app (railapp.railway.gov.bd).

Every locator the booking stages use is defined here as a Selenium
(By.*, expression) pair, grouped by screen. Fallback chains are tuples tried in
priority order. Templated locators carry `{name}` placeholders and are filled
with `fill()`, which quotes the values for the locator's language.

The site is an Angular app whose markup changes without notice. When it does,
update selectors ONLY in this file.
"""

from dataclasses import dataclass

from selenium.webdriver.common.by import By

from railbook.providers.base import Locator


def xpath_literal(value: str) -> str:
    """Quote a string for use inside an XPath expression."""
    if "'" not in value:
        return f"'{value}'"
    if '"' not in value:
        return f'"{value}"'
    parts = value.split("'")
    return "concat(" + ", \"'\", ".join(f"'{part}'" for part in parts) + ")"


def css_literal(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def css(expression: str) -> Locator:
    return (By.CSS_SELECTOR, expression)


def xpath(expression: str) -> Locator:
    return (By.XPATH, expression)


def text(value: str) -> Locator:
    """Any element whose own text contains `value`."""
    return xpath(f"//*[text()[contains(normalize-space(.), {xpath_literal(value)})]]")


def button(label: str, enabled: bool = True) -> Locator:
    """A button whose text contains `label`, optionally only when enabled."""
    expression = f"//button[contains(normalize-space(.), {xpath_literal(label)})]"
    if enabled:
        expression += "[not(@disabled)]"
    return xpath(expression)


def fill(locator: Locator, **values: str | int) -> Locator:
    """Fill a templated locator. Strings are quoted; numbers are inserted as-is."""
    by, expression = locator
    quote = xpath_literal if by == By.XPATH else css_literal
    quoted = {key: quote(value) if isinstance(value, str) else value for key, value in values.items()}
    return (by, expression.format(**quoted))


@dataclass(frozen=True)
class SplashSelectors:
    """Splash screen and the language picker."""

    route: str = "/splash"
    language_route: str = "/splash/select-language"
    # Tried in order; every visible match is clicked until the URL moves on
    language_options: tuple[Locator, ...] = (
        text("English"),
        text("বাংলা"),
        button("English", enabled=False),
        button("বাংলা", enabled=False),
        css("button"),
        css("a"),
        css("[onclick]"),
        css("[data-language]"),
        css("[href*='lang']"),
    )


@dataclass(frozen=True)
class TermsSelectors:
    """The terms and conditions dialog shown on first visit and after login."""

    dialog: Locator = css("dialog, mat-dialog-container")
    agree_buttons: tuple[Locator, ...] = (
        xpath("//dialog//button[contains(normalize-space(.), 'I AGREE')]"),
        xpath("//mat-dialog-container//button[contains(normalize-space(.), 'I AGREE')]"),
        button("I AGREE"),
        button("Agree"),
    )


@dataclass(frozen=True)
class LoginSelectors:
    """Mobile number and password form."""

    route: str = "/auth/login"
    mobile_inputs: tuple[Locator, ...] = (
        css("input[placeholder*='Mobile Number']"),
        css("input[placeholder*='mobile']"),
        css("input[type='tel']"),
        css("input[name*='mobile']"),
        css("input[name*='username']"),
    )
    password_inputs: tuple[Locator, ...] = (
        css("input[type='password']"),
        css("input[placeholder*='Password']"),
        css("input[name*='password']"),
    )
    submit_buttons: tuple[Locator, ...] = (
        button("LOGIN"),
        css("button[type='submit']:not([disabled])"),
        button("Sign In"),
        button("Log In"),
    )
    loading_indicators: tuple[Locator, ...] = (
        text("Loading"),
        text("Please wait"),
        css("mat-spinner, mat-progress-spinner, .spinner"),
    )
    captcha_indicators: tuple[Locator, ...] = (
        text("Captcha"),
        text("Verification"),
    )
    error_messages: tuple[Locator, ...] = (
        text("Invalid"),
        text("Error"),
        text("Wrong"),
        text("Incorrect"),
        css("mat-error, .error-message, .alert-danger"),
    )


@dataclass(frozen=True)
class SearchSelectors:
    """Search results page (/search?fromcity=...&tocity=...&doj=...&class=...)."""

    route: str = "/search"
    # Book button of the configured class inside the configured train's card
    train_class_book_button: Locator = xpath(
        "//*[self::h2 or self::h3 or @role='heading'][contains(normalize-space(.), {train})]"
        "/../..//*[normalize-space(text())={travel_class}]"
        "/..//button[contains(@class, 'book-now-btn')][not(@disabled)]"
    )
    any_book_button: Locator = css("button.book-now-btn.seatsLayout:not([disabled])")
    class_book_button: Locator = xpath(
        "//*[normalize-space(text())={travel_class}]/.."
        "//button[contains(@class, 'book-now-btn') or contains(normalize-space(.), 'BOOK NOW')]"
        "[not(@disabled)]"
    )
    other_classes: tuple[str, ...] = ("S_CHAIR", "SNIGDHA", "AC_S", "SHOVAN", "FIRST_SEAT")
    train_headings: Locator = css("h2, h3, [role='heading']")
    results_loaded: tuple[Locator, ...] = (
        css(".book-now-btn"),
        text("No train"),
        text("EXPRESS"),
        text("MAIL"),
        text("COMMUTER"),
    )


@dataclass(frozen=True)
class CoachSelectors:
    """Coach (bogie) picker shown before the seat map."""

    signals: tuple[Locator, ...] = (
        text("Select Coach"),
        text("Choose Coach"),
        text("Coach Selection"),
        text("Bogie"),
    )
    # Available coaches render with a white background
    coach_options: tuple[Locator, ...] = (
        css("button[class*='bg-[#FFFFFF]']"),
        css("[class*='bg-[#FFFFFF]']"),
        css("[class*='bg-white']"),
        css("[style*='background-color: #FFFFFF']"),
        css("[style*='background-color: white']"),
        xpath("//button[not(@disabled)][contains(normalize-space(.), 'Coach')]"),
        css("button[data-coach]:not([disabled])"),
        css("button[class*='coach']:not([disabled])"),
        css("div[class*='coach']:not([class*='disabled']):not([class*='full'])"),
    )
    continue_buttons: tuple[Locator, ...] = (
        button("Continue"),
        button("Proceed"),
        button("Next"),
        button("Select Seats"),
        button("Choose Seats"),
    )


@dataclass(frozen=True)
class OverlaySelectors:
    """Angular Material backdrops and dialogs that block clicks on the seat map."""

    overlays: tuple[Locator, ...] = (
        css(".cdk-overlay-backdrop"),
        css(".mat-dialog-container"),
        css("[class*='overlay']"),
        css("[class*='modal']"),
    )
    close_buttons: tuple[Locator, ...] = (
        css("button[mat-dialog-close]"),
        button("Close", enabled=False),
        button("×", enabled=False),
        css("[aria-label='Close']"),
    )


@dataclass(frozen=True)
class SeatSelectors:
    """Seat map."""

    signals: tuple[Locator, ...] = (
        text("Select Seat"),
        text("Choose Seat"),
        text("Seat Selection"),
        css("[data-seat]"),
    )
    # Templates for one seat number, use fill(locator, seat="A1")
    seat_templates: tuple[Locator, ...] = (
        xpath("//button[normalize-space(.)={seat}][not(@disabled)]"),
        css("[data-seat={seat}]:not([disabled])"),
        css("[title={seat}]:not([disabled])"),
        # Label may carry a suffix ("KA-1 (W)"); KA-1 must not match KA-10
        xpath(
            "//button[starts-with(concat(normalize-space(.), ' '), concat({seat}, ' '))]"
            "[not(@disabled)]"
        ),
    )
    available_seats: tuple[Locator, ...] = (
        css("[data-seat]:not([disabled]):not([class*='selected']):not([class*='occupied'])"),
        css("[class*='available']:not([disabled]):not([class*='selected'])"),
        css("button.seat:not([disabled]):not([class*='selected']):not([class*='occupied'])"),
    )
    continue_buttons: tuple[Locator, ...] = (
        button("CONTINUE PURCHASE"),
        button("Continue Purchase"),
        button("CONTINUE"),
        button("Continue"),
        button("Proceed"),
        button("Next"),
        button("Confirm Seat"),
    )


@dataclass(frozen=True)
class PassengerSelectors:
    """Passenger details form, one block per seat."""

    signals: tuple[Locator, ...] = (
        text("Passenger"),
        css("input[placeholder*='Name']"),
        css("input[placeholder*='Age']"),
    )
    # Templates indexed per passenger (1-based), use fill(locator, index=1)
    name_inputs: tuple[Locator, ...] = (
        xpath("(//input[contains(@placeholder, 'Name')])[{index}]"),
        xpath("(//input[contains(@name, 'name')])[{index}]"),
    )
    age_inputs: tuple[Locator, ...] = (
        xpath("(//input[contains(@placeholder, 'Age')])[{index}]"),
        xpath("(//input[contains(@name, 'age')])[{index}]"),
    )
    gender_selects: tuple[Locator, ...] = (
        xpath("(//select[contains(@name, 'gender')])[{index}]"),
        xpath("(//mat-select[contains(@formcontrolname, 'gender')])[{index}]"),
    )
    gender_clickables: tuple[Locator, ...] = (
        xpath("(//input[contains(@name, 'gender')][@value={gender}])[{index}]"),
        xpath("(//button[normalize-space(.)={gender}])[{index}]"),
        xpath("(//mat-radio-button[contains(normalize-space(.), {gender})])[{index}]"),
    )
    continue_buttons: tuple[Locator, ...] = (
        button("Continue"),
        button("Proceed"),
        button("Next"),
        button("Confirm"),
    )


@dataclass(frozen=True)
class PaymentSelectors:
    """Payment method picker."""

    signals: tuple[Locator, ...] = (
        text("Payment"),
        text("Amount"),
        text("Total"),
    )
    methods: tuple[str, ...] = ("Mobile Banking", "bKash", "Nagad", "Rocket", "Card", "Credit", "Debit")
    # Use fill(locator, method="bKash")
    method_templates: tuple[Locator, ...] = (
        xpath("//button[contains(normalize-space(.), {method})][not(@disabled)]"),
        xpath("//*[@role='radio' or self::mat-radio-button][contains(normalize-space(.), {method})]"),
        xpath("//img[contains(@alt, {method})]/.."),
    )
    proceed_buttons: tuple[Locator, ...] = (
        button("Proceed"),
        button("Pay Now"),
        button("Continue"),
        button("Confirm Payment"),
    )


@dataclass(frozen=True)
class OtpSelectors:
    """One-time passcode screen where the human takes over."""

    route_fragment: str = "otp"
    signals: tuple[Locator, ...] = (
        text("Enter Your OTP Code"),
        css("input[placeholder*='OTP'], input[name*='otp'], input[id*='otp']"),
        text("Verification Code"),
        # Bare "OTP" only as an element's whole text; as a substring it shows up on the login page
        xpath("//*[normalize-space(text())='OTP']"),
    )
    success_signals: tuple[Locator, ...] = (
        text("Booking Confirmed"),
        text("Success"),
        text("Confirmed"),
        text("Booked"),
        text("Ticket"),
        text("PNR"),
    )


@dataclass(frozen=True)
class RailwayDOMSchema:
    """Top-level container grouping all selector categories."""

    SPLASH: SplashSelectors = SplashSelectors()
    TERMS: TermsSelectors = TermsSelectors()
    LOGIN: LoginSelectors = LoginSelectors()
    SEARCH: SearchSelectors = SearchSelectors()
    COACH: CoachSelectors = CoachSelectors()
    OVERLAY: OverlaySelectors = OverlaySelectors()
    SEATS: SeatSelectors = SeatSelectors()
    PASSENGERS: PassengerSelectors = PassengerSelectors()
    PAYMENT: PaymentSelectors = PaymentSelectors()
    OTP: OtpSelectors = OtpSelectors()


# Single import point: `from railbook.providers.railway_dom_schema import DOM`
DOM = RailwayDOMSchema()
