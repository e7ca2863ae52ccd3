"""
Gateway to the external anomaly scoring service.

Silver records are sent in fixed-size batches to `POST /predict`. Every
request record gets exactly one PredictionResult back, in input order. A batch
that fails as a whole (network error, timeout, HTTP error, malformed body)
fails all of its records and nothing else; there are no automatic retries.
"""

import asyncio
import logging
import math
from typing import Dict, List, Optional, Sequence
from urllib.parse import urlsplit

import requests
from pydantic import ValidationError as SchemaError

from medallion.config.settings import settings
from medallion.connectors.api_connector import APIConnector
from medallion.errors import PredictionServiceError
from medallion.utils.async_utils import run_blocking
from medallion.utils.helpers import chunk_list
from medallion.utils.validators import clamp_score, round_half_up
from schemas.prediction import (
    PredictionItem,
    PredictionRequest,
    PredictionResponse,
    PredictionResult,
    PredictionStatus,
)
from schemas.silver import MAX_SUB_SCORE, MIN_SUB_SCORE, SilverRecord

logger = logging.getLogger(__name__)

SCORE_FIELDS = ('reliability', 'availability', 'process_safety')


def split_url(url: str) -> tuple[str, str]:
    """'http://host:3333/predict' -> ('http://host:3333', '/predict')"""
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        raise ValueError(f'Invalid prediction service URL: {url!r}')
    return f'{parts.scheme}://{parts.netloc}', parts.path or '/'


class PredictionGateway:
    """Batch Silver records to the scoring service and map results back."""

    def __init__(
        self,
        api_url: Optional[str] = None,
        timeout: Optional[int] = None,
        batch_size: Optional[int] = None,
        max_concurrent_batches: Optional[int] = None,
        score_scale: Optional[int] = None,
        connector: Optional[APIConnector] = None,
    ):
        """
        Initialize prediction gateway.

        Args:
            api_url: Full predict URL (defaults to settings.PREDICTION_API_URL)
            timeout: Per-request timeout in seconds
            batch_size: Records per request
            max_concurrent_batches: Requests in flight at once (async path only)
            score_scale: 5 if the service scores on 1-5, 1 if it scores on 0-1
            connector: Preconfigured connector (built from the URL if omitted)
        """
        self.api_url = api_url or settings.PREDICTION_API_URL
        self.timeout = timeout or settings.PREDICTION_TIMEOUT
        self.batch_size = batch_size or settings.PREDICTION_BATCH_SIZE
        self.max_concurrent_batches = max_concurrent_batches or settings.PREDICTION_MAX_CONCURRENT_BATCHES
        self.score_scale = score_scale or settings.PREDICTION_SCORE_SCALE
        self.logger = logging.getLogger(f'{__name__}.gateway')

        base_url, self.endpoint = split_url(self.api_url)
        self.connector = connector or APIConnector(
            'prediction-service',
            base_url,
            api_key=settings.PREDICTION_API_KEY,
            timeout=self.timeout,
            retry_attempts=0,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @staticmethod
    def build_requests(records: Sequence[SilverRecord]) -> List[PredictionRequest]:
        return [
            PredictionRequest(
                record_id=r.id,
                equipment_id=r.equipment_id,
                description=r.description,
                equipment_name=r.equipment_description,
            )
            for r in records
        ]

    def predict(self, records: Sequence[SilverRecord]) -> List[PredictionResult]:
        """
        Score records synchronously, one batch after another.

        Returns:
            One result per record, in input order
        """
        results: List[PredictionResult] = []
        for batch in chunk_list(self.build_requests(records), self.batch_size):
            results.extend(self.predict_batch(batch))
        return results

    async def apredict(self, records: Sequence[SilverRecord]) -> List[PredictionResult]:
        """
        Score records with up to max_concurrent_batches requests in flight.

        Returns:
            One result per record, in input order
        """
        batches = chunk_list(self.build_requests(records), self.batch_size)
        if not batches:
            return []
        semaphore = asyncio.Semaphore(self.max_concurrent_batches)

        async def run_batch(batch: List[PredictionRequest]) -> List[PredictionResult]:
            async with semaphore:
                return await run_blocking(self.predict_batch, batch)

        batch_results = await asyncio.gather(*[run_batch(b) for b in batches])
        return [result for batch in batch_results for result in batch]

    def predict_batch(self, batch: List[PredictionRequest]) -> List[PredictionResult]:
        """
        Score one batch. Never raises: a failed call fails every record of the batch.
        """
        if not batch:
            return []
        try:
            response = self._call_service(batch)
        except PredictionServiceError as e:
            self.logger.error(f'Prediction batch of {e.batch_size} failed: {e}')
            return [
                PredictionResult.failed(req.record_id, str(e), equipment_id=req.equipment_id)
                for req in batch
            ]

        results = self._map_results(batch, response)
        failed = sum(1 for r in results if not r.succeeded)
        self.logger.info(f'Prediction batch: {len(batch) - failed} succeeded, {failed} failed')
        return results

    def close(self) -> None:
        self.connector.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _call_service(self, batch: List[PredictionRequest]) -> PredictionResponse:
        """
        POST one batch and validate the response envelope.

        Raises:
            PredictionServiceError: On any transport, HTTP or schema failure
        """
        payload = [req.to_payload() for req in batch]
        try:
            body = self.connector.post(self.endpoint, json=payload)
        except requests.JSONDecodeError as e:
            raise PredictionServiceError(
                f'Prediction service returned non-JSON body: {e}', batch_size=len(batch)
            ) from e
        except requests.Timeout as e:
            raise PredictionServiceError(
                f'Prediction service timed out after {self.timeout}s', batch_size=len(batch)
            ) from e
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise PredictionServiceError(
                f'Prediction service returned HTTP {status}', batch_size=len(batch), status_code=status
            ) from e
        except requests.RequestException as e:
            raise PredictionServiceError(
                f'Prediction service unreachable: {e}', batch_size=len(batch)
            ) from e
        except ValueError as e:
            raise PredictionServiceError(
                f'Prediction service returned non-JSON body: {e}', batch_size=len(batch)
            ) from e

        try:
            return PredictionResponse.model_validate(body)
        except SchemaError as e:
            raise PredictionServiceError(
                f'Unexpected prediction response shape: {e.error_count()} error(s)',
                batch_size=len(batch),
            ) from e

    def _map_results(
        self,
        batch: List[PredictionRequest],
        response: PredictionResponse,
    ) -> List[PredictionResult]:
        """Match response elements to requests by anomaly_id."""
        requested = {req.record_id: req for req in batch}
        by_id: Dict[str, PredictionResult] = {}

        for element in response.results:
            anomaly_id = element.get('anomaly_id') if isinstance(element, dict) else None
            if anomaly_id is None:
                self.logger.warning(f'Ignoring prediction element without anomaly_id: {element!r:.200}')
                continue
            anomaly_id = str(anomaly_id)
            if anomaly_id not in requested:
                self.logger.warning(f'Ignoring prediction for unknown anomaly_id {anomaly_id}')
                continue
            if anomaly_id in by_id:
                self.logger.warning(f'Duplicate prediction for {anomaly_id}, keeping the first')
                continue
            by_id[anomaly_id] = self._to_result(requested[anomaly_id], element)

        return [
            by_id.get(req.record_id)
            or PredictionResult.failed(req.record_id, 'missing from response', equipment_id=req.equipment_id)
            for req in batch
        ]

    def _to_result(self, request: PredictionRequest, element: dict) -> PredictionResult:
        try:
            item = PredictionItem.model_validate(element)
        except SchemaError as e:
            return PredictionResult.failed(
                request.record_id, f'invalid prediction element: {e.error_count()} error(s)',
                equipment_id=request.equipment_id,
            )

        if item.status != PredictionStatus.SUCCESS.value:
            error = element.get('error') or f'prediction status {item.status!r}'
            return PredictionResult.failed(request.record_id, str(error), equipment_id=request.equipment_id)
        if item.predictions is None:
            return PredictionResult.failed(request.record_id, 'missing scores', equipment_id=request.equipment_id)

        try:
            scores = {
                name: self.normalize_score(getattr(item.predictions, name).score)
                for name in SCORE_FIELDS
            }
        except ValueError as e:
            return PredictionResult.failed(request.record_id, str(e), equipment_id=request.equipment_id)

        return PredictionResult(
            record_id=request.record_id,
            equipment_id=item.equipment_id or request.equipment_id,
            status=PredictionStatus.SUCCESS,
            risk_level=item.risk_assessment.overall_risk_level if item.risk_assessment else None,
            risk_factors=item.risk_assessment.critical_factors if item.risk_assessment else [],
            confidence=item.overall_score,
            **scores,
        )

    def normalize_score(self, value: float) -> int:
        """
        Bring a service score onto the integer 1-5 scale.

        Raises:
            ValueError: If the score is not a finite number
        """
        if value is None or math.isnan(value) or math.isinf(value):
            raise ValueError(f'invalid score {value!r}')
        if self.score_scale == 1:
            value = value * MAX_SUB_SCORE
        return clamp_score(round_half_up(value), MIN_SUB_SCORE, MAX_SUB_SCORE)
