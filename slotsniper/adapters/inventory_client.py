"""
Registration portal client for listing doctors, schedules and periods and for placing orders.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, ContextManager, Dict, List

import pendulum
import requests

from ..config import AppConfig, ConfigProvider
from ..domain.exceptions import InventoryAPIError
from ..domain.models import AvailabilityWindow, Candidate, ClaimTicket, Provider, SubSlot

logger = logging.getLogger(__name__)

CLAIM_TICKET_PATTERN = re.compile(r"buildOrder\.do\?r=(\d+)")
ORDER_ID_PATTERN = re.compile(r"order_id: '(\d+)'")


def _request_marker() -> int:
    """Cache-busting ``r`` parameter the portal expects: current time in microseconds."""
    now = pendulum.now()
    return now.int_timestamp * 1_000_000 + now.microsecond


class InventoryClient:
    """
    Client for the portal's doctor, schedule and order endpoints.

    Every method either returns parsed domain objects or raises
    ``InventoryAPIError``; callers never see ``requests`` exceptions.
    """

    def __init__(
        self,
        config_provider: ConfigProvider,
        session: requests.Session | None = None,
        marker: Callable[[], int] = _request_marker,
    ):
        """
        Initialize the portal client.

        Args:
            config_provider: Source of the current configuration snapshot
            session: Optional pre-built HTTP session (tests inject fakes)
            marker: Callable producing the ``r`` request marker
        """
        self._config_provider = config_provider
        self._session = session or requests.Session()
        self._marker = marker

    @property
    def config(self) -> AppConfig:
        return self._config_provider.current

    def pinned(self) -> ContextManager[AppConfig]:
        """Use one config snapshot for every request made inside the block."""
        return self._config_provider.pinned()

    def _url(self, path: str) -> str:
        return f"{self.config.portal.base_url}/{path}"

    def _send(self, method: str, path: str, action: str, **kwargs) -> requests.Response:
        config = self.config
        # The session cookie may rotate on config reload, so it is sent per request.
        cookies = {"JSESSIONID": config.session_id}
        try:
            response = self._session.request(
                method,
                self._url(path),
                cookies=cookies,
                timeout=config.portal.request_timeout_seconds,
                **kwargs,
            )
        except requests.exceptions.RequestException as e:
            raise InventoryAPIError(f"{action} failed: {e}") from e
        return response

    def _get_json(self, path: str, action: str, params: Dict[str, Any]) -> Dict[str, Any]:
        response = self._send("GET", path, action, params=params)
        try:
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            raise InventoryAPIError(f"{action} failed: {e}") from e
        except ValueError as e:
            raise InventoryAPIError(f"{action} failed: invalid JSON: {e}\n{response.text}") from e

        if not isinstance(data, dict):
            raise InventoryAPIError(f"{action} failed: unexpected payload\n{response.text}")
        return data

    def list_providers(self) -> List[Provider]:
        """
        List every doctor of the configured department.

        Raises:
            InventoryAPIError: If the request fails or the portal reports an error
        """
        config = self.config
        data = self._get_json(
            "doc/getDocListByTime.do",
            "Fetching doctors",
            {"depId": config.department_id, "unitId": config.portal.unit_id},
        )
        if data.get("code") != "success":
            raise InventoryAPIError(f"Fetching doctors failed: {data}")

        try:
            rows = (data.get("data") or {}).get("rows") or []
            return [
                Provider(
                    provider_id=int(row["doctorId"]),
                    name=str(row["doctorName"]),
                    department_id=int(row["depId"]),
                    tier=str(row.get("zcid") or ""),
                )
                for row in rows
            ]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise InventoryAPIError(f"Fetching doctors failed: malformed row: {e}") from e

    def list_availability(self, provider: Provider) -> List[AvailabilityWindow]:
        """
        List the schedule blocks of one doctor.

        Response format:
        {
            "status": "1",
            "data": {
                "sch": [
                    {"y_state": "1", "left_num": "3", "to_date": "2024-11-25",
                     "time_type": "am", "time_type_desc": "上午", "schedule_id": "..."}
                ]
            }
        }
        """
        portal = self.config.portal
        data = self._get_json(
            "sch_new/schedulelist.do",
            "Fetching schedules",
            {
                "unit_id": portal.unit_id,
                "dep_id": provider.department_id,
                "doctor_id": provider.provider_id,
                "cur_dep_id": provider.department_id,
                "unit_name": portal.unit_name,
                "dep_name": portal.department_name,
            },
        )
        if data.get("status") != "1":
            raise InventoryAPIError(f"Fetching schedules failed: {data}")

        windows: List[AvailabilityWindow] = []
        try:
            for item in (data.get("data") or {}).get("sch") or []:
                windows.append(
                    AvailabilityWindow(
                        provider=provider,
                        date=str(item["to_date"]),
                        schedule_id=str(item["schedule_id"]),
                        time_type=str(item.get("time_type", "")),
                        time_type_label=str(item.get("time_type_desc", "")),
                        remaining=str(item.get("left_num", "")),
                        # Only y_state "1" can be booked
                        is_open=str(item.get("y_state")) == "1",
                        timezone=portal.timezone,
                    )
                )
        except (KeyError, TypeError, AttributeError) as e:
            raise InventoryAPIError(f"Fetching schedules failed: malformed entry: {e}") from e
        return windows

    def list_sub_slots(self, window: AvailabilityWindow) -> List[SubSlot]:
        """List the bookable periods inside one open schedule block."""
        provider = window.provider
        unit_detl_map = json.dumps(
            [
                {
                    "unit_id": self.config.portal.unit_id,
                    "doctor_id": str(provider.provider_id),
                    "dep_id": str(provider.department_id),
                    "schedule_id": window.schedule_id,
                    "time_type": window.time_type,
                }
            ],
            separators=(",", ":"),
        )
        data = self._get_json(
            "sch_new/detlnew.do",
            "Fetching periods",
            {"unit_detl_map": unit_detl_map},
        )
        if data.get("status") != "1":
            raise InventoryAPIError(f"Fetching periods failed: {data}")

        try:
            return [
                SubSlot(
                    slot_id=str(item["detl_id"]),
                    begin_time=str(item["begin_time"]),
                    end_time=str(item["end_time"]),
                    label=str(item.get("detl_time_desc", "")),
                    remaining=int(item.get("yuyue_num") or 0),
                )
                for item in data.get("data") or []
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise InventoryAPIError(f"Fetching periods failed: malformed entry: {e}") from e

    def claim(self, candidate: Candidate) -> ClaimTicket:
        """
        Submit an order for a candidate.

        The portal answers with an HTML page; the ticket is the ``r`` value of
        the ``buildOrder.do`` link it contains.

        Raises:
            InventoryAPIError: If no ticket can be extracted
        """
        portal = self.config.portal
        provider = candidate.provider
        params = {
            "r": self._marker(),
            "unit_id": portal.unit_id,
            "branch_id": portal.unit_id,
            "dep_id": provider.department_id,
            "doc_id": provider.provider_id,
            "sch_id": candidate.window.schedule_id,
            "detl": candidate.sub_slot.slot_id,
            "dep_name": portal.department_name,
            "doc_name": provider.name,
            "doc_level": provider.tier,
            "amt": portal.amount,
            "sch_date": candidate.window.date,
            "riseamt": portal.rise_amount,
            "begin_time": candidate.sub_slot.begin_time,
            "end_time": candidate.sub_slot.end_time,
            "origin_unit_id": portal.unit_id,
            "method": "sch1",
            "srcext_type": "",
        }
        response = self._send("GET", "addOrder/main.do", "Submitting order", params=params)

        match = CLAIM_TICKET_PATTERN.search(response.text)
        if not match:
            raise InventoryAPIError(
                f"Submitting order failed (HTTP {response.status_code}): no order ticket in response"
            )
        return ClaimTicket(token=match.group(1), candidate=candidate)

    def confirm(self, ticket: ClaimTicket) -> str:
        """
        Confirm a claimed order.

        Returns:
            The portal's order id

        Raises:
            InventoryAPIError: If the order id is missing from the response
        """
        config = self.config
        form = {
            "branchId": config.portal.unit_id,
            "payway": config.portal.pay_way,
            "socialType": "",
            "mid": config.member_id,
            "yuyueUserType": "",
            "memberType": "",
        }
        response = self._send(
            "POST",
            "act/order/buildOrder.do",
            "Confirming order",
            params={"r": ticket.token, "method": "sch1"},
            data=form,
        )

        match = ORDER_ID_PATTERN.search(response.text)
        if not match:
            raise InventoryAPIError(f"Confirming order failed:\n{response.text}")
        return match.group(1)

    def _check(self, action: str, method: str, path: str, **kwargs) -> bool:
        try:
            response = self._send(method, path, action, **kwargs)
        except InventoryAPIError as e:
            logger.warning("%s", e)
            return False

        if response.status_code == 200:
            return True
        logger.warning("%s failed:\n%s", action, response.text)
        return False

    def check_certificate(self) -> bool:
        """Check that the account's identity certificate is accepted."""
        config = self.config
        return self._check(
            "Checking certificate",
            "POST",
            "user/checkCertificate.do",
            params={"r": self._marker()},
            data={"userId": config.user_id, "memberId": config.member_id},
        )

    def check_bill_pay(self) -> bool:
        """Check the clinic's payment configuration."""
        return self._check(
            "Checking payment",
            "POST",
            "act/BillPayTipConfig.do",
            data={"unitId": self.config.portal.unit_id},
        )

    def check_order_config(self, provider: Provider) -> bool:
        """Check that the member may book this doctor at all."""
        config = self.config
        return self._check(
            "Checking booking settings",
            "GET",
            "act/order/getYuyueConfig.do",
            params={
                "unit_id": config.portal.unit_id,
                "dep_id": provider.department_id,
                "doc_id": provider.provider_id,
                "member_id": config.member_id,
            },
        )

    def check_member(self, provider: Provider) -> bool:
        """Check the member's eligibility for this doctor."""
        config = self.config
        return self._check(
            "Checking member",
            "POST",
            "act/order/checkMember.do",
            params={"r": self._marker()},
            data={
                "memberId": config.member_id,
                "yuyueUserType": "",
                "yuyueMustIDAgeLimit": "16",
                "socialType": "",
                "dep_id": provider.department_id,
                "doc_id": provider.provider_id,
                "needGuardianInfo": "",
                "noCardNeedGuardianInfo": "",
            },
        )

    def check_rise_amount(self, provider: Provider) -> bool:
        """Check the surcharge rules for this doctor."""
        config = self.config
        return self._check(
            "Checking surcharge",
            "POST",
            "act/order/checkRiseAmt.do",
            params={"r": self._marker()},
            data={
                "memberId": config.member_id,
                "dep_id": provider.department_id,
                "doc_id": provider.provider_id,
                "unit_id": config.portal.unit_id,
            },
        )
