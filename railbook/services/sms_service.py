import asyncio
import logging
from datetime import datetime

from twilio.rest import Client

from railbook.config import Settings, settings as default_settings
from railbook.models.flow import FlowOutcome, FlowStatus, ManualStepKind

logger = logging.getLogger(__name__)


class SMSService:
    """Texts the operator when a run needs them or has finished."""

    def __init__(self, config: Settings | None = None) -> None:
        self.settings = config or default_settings
        self._client: Client | None = None

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = Client(self.settings.twilio_account_sid, self.settings.twilio_auth_token)
        return self._client

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.twilio_account_sid and self.settings.twilio_auth_token)

    async def send_sms(self, message: str, to_number: str | None = None) -> str | None:
        """
        Send one SMS, to the operator unless another number is given.

        Returns the message SID, "mock_sid" when Twilio is not configured, or
        None when sending failed.
        """
        to_number = to_number or self.settings.operator_phone_number
        if not self.is_configured or not to_number:
            logger.info(f"[SMS Mock] To: {to_number or '<operator>'}, Message: {message}")
            return "mock_sid"

        try:
            result = await asyncio.to_thread(
                self.client.messages.create,
                body=message,
                from_=self.settings.twilio_phone_number,
                to=to_number,
            )
            return result.sid
        except Exception as e:
            logger.error(f"Error sending SMS: {e}")
            return None

    async def notify_manual_step(self, kind: ManualStepKind, deadline: datetime) -> str | None:
        if kind == ManualStepKind.OTP:
            action = "Enter the OTP sent by the railway site in the open browser"
        else:
            action = f"Complete the {kind.value} step in the open browser"
        message = f"Train booking needs you: {action} before {deadline.strftime('%H:%M')}."
        return await self.send_sms(message)

    async def notify_outcome(self, outcome: FlowOutcome) -> str | None:
        if outcome.status == FlowStatus.COMPLETED:
            message = "Train booking completed. Check your railway account for the ticket and PNR."
        elif outcome.status == FlowStatus.AWAITING_MANUAL_STEP:
            message = f"Train booking stopped waiting: {outcome.reason}"
        else:
            message = f"Train booking failed at {outcome.stage}: {outcome.reason}"
        return await self.send_sms(message)
