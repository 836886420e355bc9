"""PocketBase record store client and the membership/prediction repository.

Every call is made on behalf of a user with their delegated record-store token,
so collection rules (not this code) decide what a user may read or write.
"""

import json
import logging
import time
from datetime import datetime, timezone
from typing import Optional

import httpx

from fulbito.config import Settings, get_settings
from fulbito.etl.competitions import decode_season_with_stage
from fulbito.records.models import Group, GroupMember, Membership, PredictionRecord
from fulbito.telemetry import record_record_store_request

logger = logging.getLogger(__name__)


class RecordStoreError(Exception):
    """Non-2xx response (status > 0) or transport failure (status == 0)."""

    def __init__(self, status: int, message: str):
        self.status = status
        self.message = message
        super().__init__(f"PocketBase {status}: {message}")


def quote_filter_value(value: str) -> str:
    """Quote a value for a PocketBase filter expression, escaping single quotes."""
    return "'" + str(value).replace("'", "\\'") + "'"


def _error_message(response: httpx.Response) -> str:
    """Prefer PocketBase's {"message"} or first field error over the raw body."""
    text = response.text
    try:
        payload = json.loads(text)
    except ValueError:
        return text or response.reason_phrase
    if isinstance(payload, dict):
        if payload.get("message"):
            return str(payload["message"])
        for field_error in (payload.get("data") or {}).values():
            if isinstance(field_error, dict) and field_error.get("message"):
                return str(field_error["message"])
    return text


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class PocketBaseClient:
    """Generic list/get/create/update over /api/collections/{collection}/records."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings or get_settings()
        self.base_url = self.settings.POCKETBASE_URL.strip().rstrip("/")
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=self.settings.POCKETBASE_TIMEOUT_SECONDS)

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        collection: str,
        operation: str,
        auth_token: Optional[str] = None,
        params: Optional[dict] = None,
        body: Optional[dict] = None,
    ):
        if not self.configured:
            raise RecordStoreError(0, "PocketBase is not configured. Set POCKETBASE_URL")

        headers = {}
        if auth_token:
            headers["Authorization"] = f"Bearer {auth_token}"

        try:
            response = await self.client.request(
                method,
                f"{self.base_url}{path}",
                params=params,
                json=body,
                headers=headers,
                timeout=self.settings.POCKETBASE_TIMEOUT_SECONDS,
            )
        except httpx.HTTPError as e:
            record_record_store_request(collection, operation, 0)
            logger.error(f"[RECORDS] {method} {collection} failed: {e}")
            raise RecordStoreError(0, str(e)) from e

        record_record_store_request(collection, operation, response.status_code)
        if not response.is_success:
            message = _error_message(response)
            logger.warning(f"[RECORDS] {method} {collection} -> {response.status_code}: {message}")
            raise RecordStoreError(response.status_code, message)

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.warning(f"[RECORDS] {method} {collection} -> {response.status_code}: invalid JSON body")
            raise RecordStoreError(response.status_code, "invalid JSON") from e

    async def list(
        self,
        collection: str,
        auth_token: Optional[str] = None,
        filter: Optional[str] = None,
        expand: Optional[str] = None,
        per_page: int = 200,
        sort: Optional[str] = None,
    ) -> list[dict]:
        params = {"perPage": per_page}
        if filter:
            params["filter"] = filter
        if expand:
            params["expand"] = expand
        if sort:
            params["sort"] = sort
        payload = await self._request(
            "GET", f"/api/collections/{collection}/records", collection, "list", auth_token, params=params
        )
        items = (payload or {}).get("items")
        return [item for item in items if isinstance(item, dict)] if isinstance(items, list) else []

    async def get(self, collection: str, record_id: str, auth_token: Optional[str] = None) -> dict:
        return await self._request(
            "GET", f"/api/collections/{collection}/records/{record_id}", collection, "get", auth_token
        )

    async def create(self, collection: str, fields: dict, auth_token: Optional[str] = None) -> dict:
        return await self._request(
            "POST", f"/api/collections/{collection}/records", collection, "create", auth_token, body=fields
        )

    async def update(self, collection: str, record_id: str, fields: dict, auth_token: Optional[str] = None) -> dict:
        return await self._request(
            "PATCH", f"/api/collections/{collection}/records/{record_id}", collection, "update", auth_token, body=fields
        )

    async def probe(self) -> dict:
        """GET /api/health without raising."""
        if not self.configured:
            return {"configured": False, "ok": False, "status_code": 0, "latency_ms": 0, "error": "POCKETBASE_URL not set"}

        start_time = time.time()
        try:
            response = await self.client.get(f"{self.base_url}/api/health", timeout=self.settings.POCKETBASE_TIMEOUT_SECONDS)
        except httpx.HTTPError as e:
            return {
                "configured": True,
                "ok": False,
                "status_code": 0,
                "latency_ms": round((time.time() - start_time) * 1000),
                "error": str(e),
            }
        return {
            "configured": True,
            "ok": response.is_success,
            "status_code": response.status_code,
            "latency_ms": round((time.time() - start_time) * 1000),
            "error": None if response.is_success else f"PocketBase returned {response.status_code}",
        }


# =============================================================================
# REPOSITORY
# =============================================================================


def _unique_non_empty(values: list[str]) -> list[str]:
    seen = []
    for value in values:
        clean = (value or "").strip()
        if clean and clean not in seen:
            seen.append(clean)
    return seen


def _read_goal(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def member_display_name(item: dict) -> str:
    """Expanded user name, else email local part, else "Usuario <id prefix>"."""
    expanded = (item.get("expand") or {}).get("user_id")
    if isinstance(expanded, list):
        expanded = expanded[0] if expanded else None
    expanded = expanded if isinstance(expanded, dict) else {}

    user_id = item.get("user_id") or ""
    if expanded.get("name"):
        return expanded["name"]
    email = expanded.get("email") or ""
    if email.split("@")[0]:
        return email.split("@")[0]
    return f"Usuario {user_id[:6]}" if user_id else "Usuario"


def _member_from_item(item: dict) -> GroupMember:
    return GroupMember(
        user_id=item.get("user_id") or "",
        name=member_display_name(item),
        role=item.get("role") or "member",
        joined_at=item.get("joined_at") or None,
    )


def _prediction_from_item(item: dict) -> PredictionRecord:
    return PredictionRecord(
        id=item.get("id"),
        user_id=item.get("user_id") or "",
        group_id=item.get("group_id") or "",
        fixture_id=str(item.get("fixture_id") or ""),
        period=item.get("period") or "",
        home=_read_goal(item.get("home_pred")),
        away=_read_goal(item.get("away_pred")),
        submitted_at=item.get("submitted_at") or None,
    )


class RecordRepository:
    """Membership and prediction queries used by the ranking and prediction flows."""

    def __init__(self, client: PocketBaseClient):
        self.client = client
        self.settings = client.settings

    async def list_groups_for_user(self, user_id: str, auth_token: str) -> list[Membership]:
        q = quote_filter_value
        items = await self.client.list(
            "group_members",
            auth_token,
            filter=f"user_id={q(user_id)} && status='active'",
            expand="group_id",
            per_page=200,
        )

        memberships = []
        for item in items:
            group_node = (item.get("expand") or {}).get("group_id")
            if not isinstance(group_node, dict) or not group_node.get("id"):
                continue
            league_id = group_node.get("league_id") or self.settings.API_FOOTBALL_DEFAULT_LEAGUE_ID
            season, stage = decode_season_with_stage(
                group_node.get("season"), league_id, self.settings.default_season
            )
            memberships.append(
                Membership(
                    group=Group(
                        id=group_node["id"],
                        name=group_node.get("name") or "",
                        slug=group_node.get("slug"),
                        league_id=league_id,
                        season=season,
                        competition_stage=stage,
                    ),
                    role=item.get("role") or "member",
                    joined_at=item.get("joined_at") or None,
                )
            )
        return memberships

    async def is_active_group_member(self, user_id: str, group_id: str, auth_token: str) -> bool:
        q = quote_filter_value
        items = await self.client.list(
            "group_members",
            auth_token,
            filter=f"user_id={q(user_id)} && group_id={q(group_id)} && status='active'",
            per_page=1,
        )
        return len(items) > 0

    async def list_group_members(self, group_id: str, auth_token: str) -> list[GroupMember]:
        items = await self.client.list(
            "group_members",
            auth_token,
            filter=f"group_id={quote_filter_value(group_id)} && status='active'",
            expand="user_id",
            per_page=200,
        )
        return [m for m in (_member_from_item(item) for item in items) if m.user_id]

    async def list_group_members_for_groups(self, group_ids: list[str], auth_token: str) -> dict[str, list[GroupMember]]:
        ids = _unique_non_empty(group_ids)
        if not ids:
            return {}

        by_group: dict[str, list[GroupMember]] = {group_id: [] for group_id in ids}
        group_filter = " || ".join(f"group_id={quote_filter_value(group_id)}" for group_id in ids)
        items = await self.client.list(
            "group_members",
            auth_token,
            filter=f"status='active' && ({group_filter})",
            expand="user_id",
            per_page=2000,
        )
        for item in items:
            group_id = item.get("group_id")
            if group_id in by_group and item.get("user_id"):
                by_group[group_id].append(_member_from_item(item))
        return by_group

    async def list_group_predictions(
        self,
        group_id: str,
        auth_token: str,
        period: Optional[str] = None,
    ) -> list[PredictionRecord]:
        clauses = [f"group_id={quote_filter_value(group_id)}"]
        if period:
            clauses.append(f"period={quote_filter_value(period)}")
        items = await self.client.list("predictions", auth_token, filter=" && ".join(clauses), per_page=1000)
        predictions = [_prediction_from_item(item) for item in items]
        for prediction in predictions:
            prediction.group_id = prediction.group_id or group_id
        return predictions

    async def list_group_predictions_for_groups(
        self,
        group_ids: list[str],
        auth_token: str,
        period: Optional[str] = None,
    ) -> dict[str, list[PredictionRecord]]:
        ids = _unique_non_empty(group_ids)
        if not ids:
            return {}

        by_group: dict[str, list[PredictionRecord]] = {group_id: [] for group_id in ids}
        group_filter = " || ".join(f"group_id={quote_filter_value(group_id)}" for group_id in ids)
        clauses = [f"({group_filter})"]
        if period:
            clauses.append(f"period={quote_filter_value(period)}")
        items = await self.client.list("predictions", auth_token, filter=" && ".join(clauses), per_page=5000)
        for item in items:
            prediction = _prediction_from_item(item)
            if prediction.group_id in by_group:
                by_group[prediction.group_id].append(prediction)
        return by_group

    async def list_predictions_for_scope(
        self,
        user_id: str,
        group_id: str,
        period: str,
        auth_token: str,
    ) -> list[PredictionRecord]:
        q = quote_filter_value
        items = await self.client.list(
            "predictions",
            auth_token,
            filter=f"user_id={q(user_id)} && group_id={q(group_id)} && period={q(period)}",
            per_page=300,
        )
        return [_prediction_from_item(item) for item in items]

    async def upsert_prediction(
        self,
        user_id: str,
        group_id: str,
        fixture_id: str,
        period: str,
        home: Optional[int],
        away: Optional[int],
        auth_token: str,
    ) -> PredictionRecord:
        """Create or update the single prediction keyed by (user, group, fixture)."""
        q = quote_filter_value
        existing = await self.client.list(
            "predictions",
            auth_token,
            filter=f"user_id={q(user_id)} && group_id={q(group_id)} && fixture_id={q(fixture_id)}",
            per_page=1,
        )

        now = _utcnow_iso()
        fields = {
            "user_id": user_id,
            "group_id": group_id,
            "fixture_id": fixture_id,
            "period": period,
            "home_pred": home,
            "away_pred": away,
            "submitted_at": now,
            "updated_at": now,
        }

        if existing:
            record = await self.client.update("predictions", existing[0]["id"], fields, auth_token)
        else:
            record = await self.client.create("predictions", fields, auth_token)

        return _prediction_from_item({**fields, **(record or {})})
