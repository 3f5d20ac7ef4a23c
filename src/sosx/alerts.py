"""
Rate alerts: threshold rules on a currency pair, persisted as a JSON list and
checked against the current rate table.

An alert on FROM/TO watches how many TO one FROM buys. "above" fires while
that rate is strictly greater than the threshold, "below" while it is
strictly less. Firing is logged and reported to the caller; delivery is
someone else's job.
"""

import logging
import uuid
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from sosx.cache import Clock, utc_now
from sosx.config import Settings
from sosx.models import Currency, normalize_currency
from sosx.service import RateService
from sosx.storage import read_json, write_json

logger = logging.getLogger(__name__)


class AlertDirection(str, Enum):
    ABOVE = "above"
    BELOW = "below"


class RateAlert(BaseModel):
    """A stored threshold rule."""
    id: str
    from_currency: str
    to_currency: str
    threshold: float = Field(gt=0, description="TO per one FROM")
    direction: AlertDirection
    active: bool = True
    created_at: datetime

    @field_validator("from_currency", "to_currency")
    @classmethod
    def check_currency(cls, v: str) -> str:
        return normalize_currency(v)

    def is_triggered_by(self, rate: float) -> bool:
        if self.direction == AlertDirection.ABOVE:
            return rate > self.threshold
        return rate < self.threshold


class AlertUpdate(BaseModel):
    """Fields of an alert that may change after creation."""
    threshold: float | None = Field(default=None, gt=0)
    direction: AlertDirection | None = None
    active: bool | None = None


class TriggeredAlert(BaseModel):
    """An alert whose condition held during a check."""
    alert: RateAlert
    current_rate: float
    message: str
    triggered_at: datetime


class AlertNotFoundError(LookupError):
    """Raised for an alert id that is not stored."""

    def __init__(self, alert_id: str):
        super().__init__(f"Alert with id {alert_id} not found")
        self.alert_id = alert_id


def _parse_alerts(raw: Any, source: Path | None) -> list[RateAlert]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        logger.warning(f"Ignoring corrupt alerts file at {source}: not a list")
        return []

    alerts: list[RateAlert] = []
    for entry in raw:
        try:
            alerts.append(RateAlert.model_validate(entry))
        except ValidationError as e:
            logger.warning(f"Dropping corrupt alert at {source}: {e.error_count()} error(s)")
    return alerts


class AlertManager:
    """
    CRUD over rate alerts plus check_alerts(), which the scheduler runs on an
    interval. Alerts are loaded lazily once and written back on every change.
    """

    def __init__(
        self,
        rate_service: RateService,
        persist_path: str | Path | None = None,
        clock: Clock = utc_now
    ):
        self.rate_service = rate_service
        self.persist_path = Path(persist_path).expanduser() if persist_path else None
        self._clock = clock
        self._alerts: list[RateAlert] | None = None

    @classmethod
    def from_settings(cls, settings: Settings, rate_service: RateService) -> "AlertManager":
        return cls(rate_service=rate_service, persist_path=settings.alerts_path)

    async def get_alerts(self) -> list[RateAlert]:
        alerts = await self._load()
        return [alert.model_copy() for alert in alerts]

    async def get_alert(self, alert_id: str) -> RateAlert:
        alerts = await self._load()
        return self._find(alerts, alert_id).model_copy()

    async def create_alert(
        self,
        from_currency: str | Currency,
        to_currency: str | Currency,
        threshold: float,
        direction: AlertDirection | str
    ) -> RateAlert:
        """
        Store a new active alert.

        Raises:
            UnsupportedCurrencyError: for a currency outside SUPPORTED_CURRENCIES
            ValueError: for a non-positive threshold or unknown direction
        """
        src = normalize_currency(from_currency)
        dst = normalize_currency(to_currency)
        if threshold <= 0:
            raise ValueError(f"Alert threshold must be positive, got {threshold}")

        alert = RateAlert(
            id=uuid.uuid4().hex[:12],
            from_currency=src,
            to_currency=dst,
            threshold=threshold,
            direction=AlertDirection(direction),
            created_at=self._clock(),
        )
        alerts = await self._load()
        alerts.append(alert)
        await self._save()

        logger.info(f"🔔 Created alert {alert.id}: {src}/{dst} {alert.direction.value} {threshold}")
        return alert.model_copy()

    async def update_alert(self, alert_id: str, update: AlertUpdate) -> RateAlert:
        """
        Apply the fields set on update.

        Raises:
            AlertNotFoundError: if no alert has alert_id
        """
        alerts = await self._load()
        current = self._find(alerts, alert_id)
        changes = update.model_dump(exclude_none=True)
        updated = current.model_copy(update=changes)
        alerts[alerts.index(current)] = updated
        await self._save()

        logger.info(f"🔔 Updated alert {alert_id}: {changes}")
        return updated.model_copy()

    async def delete_alert(self, alert_id: str) -> None:
        """
        Raises:
            AlertNotFoundError: if no alert has alert_id
        """
        alerts = await self._load()
        alerts.remove(self._find(alerts, alert_id))
        await self._save()
        logger.info(f"🔔 Deleted alert {alert_id}")

    async def check_alerts(self) -> list[TriggeredAlert]:
        """Evaluate active alerts against the current table; return the ones that fire."""
        active = [alert for alert in await self._load() if alert.active]
        if not active:
            return []

        rates = await self.rate_service.get_rates()
        now = self._clock()
        triggered: list[TriggeredAlert] = []

        for alert in active:
            current_rate = rates[alert.to_currency] / rates[alert.from_currency]
            if not alert.is_triggered_by(current_rate):
                continue

            message = (
                f"Alert triggered: {alert.from_currency}/{alert.to_currency} is "
                f"{current_rate:.6f} ({alert.direction.value} {alert.threshold})"
            )
            logger.warning(f"🔔 {message}")
            triggered.append(TriggeredAlert(
                alert=alert.model_copy(),
                current_rate=current_rate,
                message=message,
                triggered_at=now,
            ))

        logger.info(f"🔔 Checked {len(active)} active alert(s), {len(triggered)} triggered")
        return triggered

    def _find(self, alerts: list[RateAlert], alert_id: str) -> RateAlert:
        for alert in alerts:
            if alert.id == alert_id:
                return alert
        raise AlertNotFoundError(alert_id)

    async def _load(self) -> list[RateAlert]:
        if self._alerts is None:
            raw = await read_json(self.persist_path) if self.persist_path else None
            self._alerts = _parse_alerts(raw, self.persist_path)
        return self._alerts

    async def _save(self) -> None:
        if self.persist_path is None or self._alerts is None:
            return
        await write_json(
            self.persist_path,
            [alert.model_dump(mode="json") for alert in self._alerts],
        )
