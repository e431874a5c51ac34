"""
Policy Repository Client

Reads personal-accident policies from the policy service and patches the
used amount of a single benefit.
"""
import json
import logging
from typing import Any, List, Optional
from urllib.parse import quote

import requests
from pydantic import BaseModel, ValidationError

from app.core.errors import PolicyRepositoryError
from app.core.models import Policy

logger = logging.getLogger(__name__)

# Keys the policy list may be nested under
ENVELOPE_KEYS = ("policies", "personalaccidents")


class PatchResult(BaseModel):
    """Outcome of a benefit usage update."""
    success: bool
    status_code: Optional[int] = None
    message: Optional[str] = None


def unwrap_policies(data: Any) -> List[dict]:
    """
    Pull the policy records out of a fetch response.

    Accepts a bare list, an object holding the list under one of
    ENVELOPE_KEYS, or an API-gateway wrapper whose `body` (a JSON string or
    an object) holds either of those.
    """
    if isinstance(data, dict) and "body" in data:
        body = data["body"]
        if isinstance(body, str):
            try:
                body = json.loads(body)
            except ValueError as e:
                raise PolicyRepositoryError("Policy service returned an unreadable body") from e
        data = body

    if isinstance(data, dict):
        for key in ENVELOPE_KEYS:
            if key in data:
                data = data[key] or []
                break
        else:
            raise PolicyRepositoryError(
                f"Unrecognized policy envelope with keys {sorted(data.keys())}"
            )

    if not isinstance(data, list):
        raise PolicyRepositoryError(f"Expected a list of policies, got {type(data).__name__}")

    return [record for record in data if isinstance(record, dict)]


class PolicyRepositoryClient:
    """
    HTTP client for the policy service.

    Transport and parse failures raise PolicyRepositoryError; a rejected
    update is reported through PatchResult instead.
    """

    SUCCESS_STATUS = 200

    def __init__(
        self,
        base_url: str,
        timeout: Optional[float] = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch(self) -> List[Policy]:
        """Fetch every policy the service exposes."""
        try:
            response = self.session.get(self.base_url, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            raise PolicyRepositoryError(f"Policy fetch failed: {e}") from e
        except ValueError as e:
            raise PolicyRepositoryError("Policy service returned invalid JSON") from e

        policies = []
        for record in unwrap_policies(data):
            try:
                policies.append(Policy.model_validate(record))
            except ValidationError as e:
                logger.warning(f"Skipping malformed policy record {record.get('id')!r}: {e.error_count()} error(s)")

        logger.info(f"Fetched {len(policies)} policies")
        return policies

    def find_by_employee_id(self, employee_id: str) -> Optional[Policy]:
        """
        Select the single policy for an employee.

        Returns:
            The matching policy, or None when the employee has none
        """
        for policy in self.fetch():
            if policy.employee_id == employee_id:
                return policy
        return None

    def patch_benefit_usage(
        self, employee_id: str, benefit_type: str, new_used_amount: float
    ) -> PatchResult:
        """
        Set a benefit's used amount.

        Args:
            employee_id: Employee whose policy is updated
            benefit_type: Type label of the benefit to update
            new_used_amount: The new cumulative used amount

        Returns:
            PatchResult; success only on HTTP 200
        """
        url = f"{self.base_url}/{quote(str(employee_id), safe='')}/benefits-used-amount"
        payload = {"benefits": [{"type": benefit_type, "usedAmount": new_used_amount}]}

        try:
            response = self.session.patch(url, json=payload, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise PolicyRepositoryError(f"Benefit update failed: {e}") from e

        message = None
        try:
            body = response.json()
            if isinstance(body, dict):
                message = body.get("message")
        except ValueError:
            logger.warning(f"Benefit update returned a non-JSON body (status {response.status_code})")

        success = response.status_code == self.SUCCESS_STATUS
        if success:
            logger.info(f"Employee {employee_id}: {benefit_type} used amount set to {new_used_amount}")
        else:
            logger.error(
                f"Employee {employee_id}: update of {benefit_type} rejected "
                f"(status {response.status_code}): {message}"
            )

        return PatchResult(success=success, status_code=response.status_code, message=message)
