"""
Suspicious activity reporting.

Best-effort, fire-and-forget delivery of alerts to the backend. Requests
run on a worker thread; failures are logged and never retried.
"""

import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Any, Dict, Optional

import requests

from shared_utils.common import get_timestamp_ms
from shared_utils.validation import validate_alert_data
from .interfaces import AlertHandler
from .models import SuspiciousAlert


SUSPICIOUS_ACTIVITY_PATH = "/exam/suspicious-activity"


class ActivityReporter(AlertHandler):
    """Posts each alert to ``{api_base_url}/exam/suspicious-activity``."""

    def __init__(
        self,
        api_base_url: str,
        exam_id: Optional[str] = None,
        student_id: Optional[str] = None,
        session: Optional[requests.Session] = None,
        executor: Optional[Executor] = None,
        timeout: float = 5.0
    ):
        self.endpoint = api_base_url.rstrip('/') + SUSPICIOUS_ACTIVITY_PATH
        self.exam_id = exam_id
        self.student_id = student_id
        self.session = session or requests.Session()
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="activity-reporter")
        self.timeout = timeout
        self.reports_sent = 0
        self.reports_failed = 0
        self.logger = logging.getLogger(__name__)

    def build_payload(self, alert: SuspiciousAlert) -> Dict[str, Any]:
        return {
            'examId': alert.exam_id or self.exam_id,
            'studentId': alert.student_id or self.student_id,
            'alert': alert.to_dict(),
            'timestamp': get_timestamp_ms(),
        }

    def handle_alert(self, alert: SuspiciousAlert) -> bool:
        payload = self.build_payload(alert)
        is_valid, errors = validate_alert_data(payload['alert'])
        if not is_valid:
            self.logger.warning(f"Not reporting malformed alert {alert.alert_id}: {errors}")
            return False

        try:
            self.executor.submit(self._post, payload)
            return True
        except RuntimeError as e:
            # executor already shut down
            self.logger.warning(f"Dropping report for alert {alert.alert_id}: {e}")
            return False

    def _post(self, payload: Dict[str, Any]) -> bool:
        alert_id = payload['alert'].get('id')
        try:
            response = self.session.post(self.endpoint, json=payload, timeout=self.timeout)
            if not response.ok:
                self.reports_failed += 1
                self.logger.warning(
                    f"Suspicious activity report for {alert_id} rejected: "
                    f"{response.status_code} {response.reason}"
                )
                return False
            self.reports_sent += 1
            return True
        except requests.RequestException as e:
            self.reports_failed += 1
            self.logger.error(f"Failed to log suspicious activity {alert_id}: {e}")
            return False

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting reports; optionally wait for in-flight ones."""
        if self._owns_executor:
            self.executor.shutdown(wait=wait)
