"""Compensation calculator: worker terms + job outcome -> amount owed."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING

from cleaning_finance.calculators.types import (
    ZERO,
    CompensationModel,
    CompensationResult,
    CompensationTerms,
    quantize_hours,
    quantize_money,
)
from cleaning_finance.errors import ConfigurationError

if TYPE_CHECKING:
    from cleaning_finance.models import WorkerCompensationProfile

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


class CompensationCalculator:
    """Pure calculator for what a worker is owed for one job.

    The only fallback is the documented default hourly rate, used when a
    worker has no profile or an hourly profile without a rate.
    """

    def __init__(self, default_hourly_rate: Decimal):
        self.default_hourly_rate = default_hourly_rate

    def resolve_terms(self, profile: WorkerCompensationProfile | None) -> CompensationTerms:
        """Snapshot the model and rate to use from a profile."""
        if profile is None:
            logger.warning(
                "No compensation profile; using default hourly rate %s",
                self.default_hourly_rate,
            )
            return CompensationTerms(CompensationModel.HOURLY, self.default_hourly_rate)

        try:
            model = CompensationModel(profile.compensation_model)
        except ValueError:
            raise ConfigurationError(
                "compensation_model",
                f"unknown model '{profile.compensation_model}' for worker {profile.worker_id}",
            )

        if model == CompensationModel.HOURLY:
            if profile.hourly_rate is None:
                logger.warning(
                    "Worker %s has no hourly rate; using default %s",
                    profile.worker_id,
                    self.default_hourly_rate,
                )
                return CompensationTerms(model, self.default_hourly_rate)
            return CompensationTerms(model, profile.hourly_rate)

        if model == CompensationModel.FIXED:
            rate = profile.fixed_amount_per_job
        else:
            rate = profile.percentage_rate
        if rate is None:
            raise ConfigurationError(
                f"{model.value}_rate",
                f"worker {profile.worker_id} has no rate for the {model.value} model",
            )
        return CompensationTerms(model, rate)

    def calculate(
        self,
        terms: CompensationTerms,
        hours_worked: Decimal,
        job_total: Decimal | None,
    ) -> CompensationResult:
        """Compute the amount due for one job.

        Raises:
            ConfigurationError: negative hours, negative rate, or a
                percentage job without a total.
        """
        if hours_worked < ZERO:
            raise ConfigurationError("hours_worked", f"negative hours {hours_worked}")
        if terms.rate < ZERO:
            raise ConfigurationError("rate", f"negative rate {terms.rate}")
        total = job_total if job_total is not None else ZERO
        if total < ZERO:
            raise ConfigurationError("job_total", f"negative job total {total}")

        hours = quantize_hours(hours_worked)
        if terms.model == CompensationModel.HOURLY:
            amount = hours * terms.rate
        elif terms.model == CompensationModel.FIXED:
            amount = terms.rate
        elif terms.model == CompensationModel.PERCENTAGE:
            if job_total is None:
                raise ConfigurationError("job_total", "percentage model needs a job total")
            amount = total * (terms.rate / HUNDRED)
        else:
            raise ConfigurationError("compensation_model", f"unknown model '{terms.model}'")

        return CompensationResult(
            model=terms.model,
            rate=terms.rate,
            hours_worked=hours,
            job_total=quantize_money(total),
            amount_due=quantize_money(amount),
        )
