"""DynamoDB backends implementing IRunStore and IContentStore.

Key layout
----------
``newsreel-runs``:
    PK=RUN#{run_id}  SK=META            run header
    PK=RUN#{run_id}  SK=STEP#{name}     one step record, ``seq`` orders the log

``newsreel-content``:
    PK=ARTICLE#{pick_id}  SK=ARTICLE
    PK=SNAPSHOT           SK=SNAP#{captured_at}#{name}
    PK=VIDEO#{video_id}   SK=VIDEO | COST#{entry_id or created_at#n} | POLICY#{stage}#{created_at}

Entity writes are keyed by natural identity, never by run id.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Iterator

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from newsreel.core.exceptions import ConcurrentUpdateError, RunNotFoundError, StorageError
from newsreel.models.content import Article, ArticleStatus, CostLogEntry, Snapshot, Video
from newsreel.models.policy import PolicyRunRecord
from newsreel.models.run import Run, RunStatus, StepKind, StepRecord

RUNS_TABLE = "newsreel-runs"
CONTENT_TABLE = "newsreel-content"
_BATCH_GET_LIMIT = 100


def _decode_decimals(item: dict[str, Any]) -> dict[str, Any]:
    """Convert Decimal values in a DynamoDB item to int/float."""
    out: dict[str, Any] = {}
    for k, v in item.items():
        if isinstance(v, Decimal):
            out[k] = int(v) if v == int(v) else float(v)
        elif isinstance(v, dict):
            out[k] = _decode_decimals(v)
        else:
            out[k] = v
    return out


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_conditional_failure(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


class _DynamoDBTable:
    """Shared resource wiring and paginated reads."""

    def __init__(self, base_name: str, table_suffix: str = "", region: str = "us-east-1",
                 endpoint_url: str | None = None) -> None:
        kwargs: dict = {"region_name": region}
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        self._ddb = boto3.resource("dynamodb", **kwargs)
        self._table_name = f"{base_name}{table_suffix}"
        self._table = self._ddb.Table(self._table_name)

    def _query(self, **kwargs: Any) -> Iterator[dict[str, Any]]:
        while True:
            resp = self._table.query(**kwargs)
            for item in resp.get("Items", []):
                yield _decode_decimals(item)
            if "LastEvaluatedKey" not in resp:
                return
            kwargs["ExclusiveStartKey"] = resp["LastEvaluatedKey"]

    def _scan(self, **kwargs: Any) -> Iterator[dict[str, Any]]:
        while True:
            resp = self._table.scan(**kwargs)
            for item in resp.get("Items", []):
                yield _decode_decimals(item)
            if "LastEvaluatedKey" not in resp:
                return
            kwargs["ExclusiveStartKey"] = resp["LastEvaluatedKey"]

    def _put_if_absent(self, item: dict[str, Any]) -> bool:
        try:
            self._table.put_item(Item=item, ConditionExpression="attribute_not_exists(PK)")
            return True
        except ClientError as exc:
            if _is_conditional_failure(exc):
                return False
            raise StorageError(f"DynamoDB put failed for {item['PK']}/{item['SK']}: {exc}") from exc


# ---------------------------------------------------------------------------
# Run store
# ---------------------------------------------------------------------------

class DynamoDBRunStore(_DynamoDBTable):
    """Production IRunStore backed by DynamoDB."""

    def __init__(self, table_suffix: str = "", region: str = "us-east-1",
                 endpoint_url: str | None = None) -> None:
        super().__init__(RUNS_TABLE, table_suffix, region, endpoint_url)

    @staticmethod
    def _pk(run_id: str) -> str:
        return f"RUN#{run_id}"

    def insert_run(self, run: Run) -> bool:
        now = _iso(_utcnow())
        item: dict[str, Any] = {
            "PK": self._pk(run.run_id),
            "SK": "META",
            "program": run.program,
            "status": run.status.value,
            "input": json.dumps(run.input),
            "step_count": 0,
            "created_at": _iso(run.created_at) if run.created_at else now,
            "updated_at": now,
        }
        if run.parent_run_id:
            item["parent_run_id"] = run.parent_run_id
        return self._put_if_absent(item)

    def get_run(self, run_id: str) -> Run | None:
        items = list(self._query(KeyConditionExpression=Key("PK").eq(self._pk(run_id))))
        meta = next((i for i in items if i["SK"] == "META"), None)
        if meta is None:
            return None
        steps = sorted((i for i in items if i["SK"].startswith("STEP#")), key=lambda i: i["seq"])
        return Run(
            run_id=run_id,
            program=meta["program"],
            input=json.loads(meta.get("input") or "{}"),
            status=RunStatus(meta["status"]),
            steps=[self._to_step(i) for i in steps],
            output=json.loads(meta["output"]) if meta.get("output") else None,
            error=meta.get("error"),
            parent_run_id=meta.get("parent_run_id"),
            created_at=meta.get("created_at"),
            updated_at=meta.get("updated_at"),
        )

    @staticmethod
    def _to_step(item: dict[str, Any]) -> StepRecord:
        return StepRecord(
            name=item["name"],
            kind=StepKind(item.get("kind", StepKind.DO.value)),
            attempts=item.get("attempts", 0),
            result=json.loads(item["result"]) if "result" in item else None,
            wake_at=item.get("wake_at"),
            completed_at=item.get("completed_at"),
        )

    def _next_seq(self, run_id: str) -> int:
        try:
            resp = self._table.update_item(
                Key={"PK": self._pk(run_id), "SK": "META"},
                UpdateExpression="ADD step_count :one",
                ConditionExpression="attribute_exists(PK)",
                ExpressionAttributeValues={":one": 1},
                ReturnValues="UPDATED_NEW",
            )
        except ClientError as exc:
            if _is_conditional_failure(exc):
                raise RunNotFoundError(f"Run {run_id!r} not found") from exc
            raise StorageError(f"DynamoDB step counter failed for run {run_id}: {exc}") from exc
        return int(resp["Attributes"]["step_count"])

    def save_step(self, run_id: str, record: StepRecord) -> None:
        key = {"PK": self._pk(run_id), "SK": f"STEP#{record.name}"}
        existing = self._table.get_item(Key=key).get("Item")
        seq = int(existing["seq"]) if existing else self._next_seq(run_id)
        item: dict[str, Any] = {
            **key,
            "name": record.name,
            "kind": record.kind.value,
            "seq": seq,
            "attempts": record.attempts,
        }
        if record.succeeded:
            item["result"] = json.dumps(record.result)
            item["completed_at"] = _iso(record.completed_at)
        if record.wake_at is not None:
            item["wake_at"] = _iso(record.wake_at)
        try:
            self._table.put_item(Item=item)
        except ClientError as exc:
            raise StorageError(f"DynamoDB step write failed for {run_id}/{record.name}: {exc}") from exc

    def set_status(self, run_id: str, status: RunStatus) -> None:
        try:
            self._table.update_item(
                Key={"PK": self._pk(run_id), "SK": "META"},
                UpdateExpression="SET #s = :s, updated_at = :u",
                ConditionExpression="attribute_exists(PK)",
                ExpressionAttributeNames={"#s": "status"},
                ExpressionAttributeValues={":s": status.value, ":u": _iso(_utcnow())},
            )
        except ClientError as exc:
            if _is_conditional_failure(exc):
                raise RunNotFoundError(f"Run {run_id!r} not found") from exc
            raise StorageError(f"DynamoDB status update failed for run {run_id}: {exc}") from exc

    def finish_run(
        self,
        run_id: str,
        status: RunStatus,
        output: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> bool:
        names = {"#s": "status"}
        values: dict[str, Any] = {
            ":s": status.value,
            ":u": _iso(_utcnow()),
            ":terminated": RunStatus.TERMINATED.value,
        }
        sets = ["#s = :s", "updated_at = :u"]
        if output is not None:
            sets.append("#o = :o")
            names["#o"] = "output"
            values[":o"] = json.dumps(output)
        if error is not None:
            sets.append("#e = :e")
            names["#e"] = "error"
            values[":e"] = error
        try:
            self._table.update_item(
                Key={"PK": self._pk(run_id), "SK": "META"},
                UpdateExpression="SET " + ", ".join(sets),
                ConditionExpression="attribute_exists(PK) AND #s <> :terminated",
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
            )
            return True
        except ClientError as exc:
            if _is_conditional_failure(exc):
                return False
            raise StorageError(f"DynamoDB finish failed for run {run_id}: {exc}") from exc

    def list_runs(self, statuses: Iterable[RunStatus]) -> list[Run]:
        wanted = [s.value for s in statuses]
        metas = self._scan(FilterExpression=Attr("SK").eq("META") & Attr("status").is_in(wanted))
        runs = [self.get_run(m["PK"].removeprefix("RUN#")) for m in metas]
        return [r for r in runs if r is not None]


# ---------------------------------------------------------------------------
# Content store
# ---------------------------------------------------------------------------

class DynamoDBContentStore(_DynamoDBTable):
    """Production IContentStore backed by a single DynamoDB table."""

    def __init__(self, table_suffix: str = "", region: str = "us-east-1",
                 endpoint_url: str | None = None) -> None:
        super().__init__(CONTENT_TABLE, table_suffix, region, endpoint_url)

    # ---- articles ----

    @staticmethod
    def _article_item(article: Article) -> dict[str, Any]:
        item: dict[str, Any] = {
            "PK": f"ARTICLE#{article.pick_id}",
            "SK": "ARTICLE",
            "status": article.status.value,
            "doc": article.model_dump_json(),
        }
        if article.scheduled_rescrape_at is not None:
            item["scheduled_rescrape_at"] = _iso(article.scheduled_rescrape_at)
        if article.second_scraped_at is not None:
            item["second_scraped_at"] = _iso(article.second_scraped_at)
        return item

    def get_article(self, pick_id: str) -> Article | None:
        item = self._table.get_item(Key={"PK": f"ARTICLE#{pick_id}", "SK": "ARTICLE"}).get("Item")
        return Article.model_validate_json(item["doc"]) if item else None

    def insert_article_if_absent(self, article: Article) -> bool:
        return self._put_if_absent(self._article_item(article))

    def save_article(self, article: Article) -> None:
        article.updated_at = _utcnow()
        self._table.put_item(Item=self._article_item(article))

    def find_missing_article_keys(self, pick_ids: list[str]) -> list[str]:
        found: set[str] = set()
        unique = list(dict.fromkeys(pick_ids))
        for start in range(0, len(unique), _BATCH_GET_LIMIT):
            chunk = unique[start:start + _BATCH_GET_LIMIT]
            request = {
                self._table_name: {
                    "Keys": [{"PK": f"ARTICLE#{pid}", "SK": "ARTICLE"} for pid in chunk],
                    "ProjectionExpression": "PK",
                }
            }
            while request:
                resp = self._ddb.batch_get_item(RequestItems=request)
                for item in resp.get("Responses", {}).get(self._table_name, []):
                    found.add(item["PK"].removeprefix("ARTICLE#"))
                request = resp.get("UnprocessedKeys") or {}
        return [pid for pid in pick_ids if pid not in found]

    def list_articles_due_for_rescrape(self, now: datetime, limit: int) -> list[Article]:
        items = self._scan(
            FilterExpression=(
                Attr("SK").eq("ARTICLE")
                & Attr("status").eq(ArticleStatus.SCRAPED_V1.value)
                & Attr("scheduled_rescrape_at").lte(_iso(now))
            )
        )
        due = sorted(items, key=lambda i: i["scheduled_rescrape_at"])[:limit]
        return [Article.model_validate_json(i["doc"]) for i in due]

    def list_selectable_articles(self, since: datetime) -> list[Article]:
        used = {
            pid
            for item in self._scan(FilterExpression=Attr("SK").eq("VIDEO"))
            for pid in Video.model_validate_json(item["doc"]).articles
        }
        items = self._scan(
            FilterExpression=(
                Attr("SK").eq("ARTICLE")
                & Attr("status").eq(ArticleStatus.SCRAPED_V2.value)
                & Attr("second_scraped_at").gte(_iso(since))
            )
        )
        articles = [Article.model_validate_json(i["doc"]) for i in items]
        articles = [a for a in articles if a.pick_id not in used]
        articles.sort(key=lambda a: a.second_scraped_at, reverse=True)
        return articles

    # ---- snapshots ----

    def save_snapshot(self, snapshot: Snapshot) -> None:
        self._put_if_absent({
            "PK": "SNAPSHOT",
            "SK": f"SNAP#{_iso(snapshot.captured_at)}#{snapshot.name}",
            "name": snapshot.name,
            "doc": snapshot.model_dump_json(),
        })

    def latest_snapshot(self) -> Snapshot | None:
        resp = self._table.query(
            KeyConditionExpression=Key("PK").eq("SNAPSHOT"),
            ScanIndexForward=False,
            Limit=1,
        )
        items = resp.get("Items", [])
        return Snapshot.model_validate_json(items[0]["doc"]) if items else None

    def delete_snapshots_before(self, cutoff: datetime) -> int:
        stale = list(self._query(
            KeyConditionExpression=Key("PK").eq("SNAPSHOT") & Key("SK").lt(f"SNAP#{_iso(cutoff)}"),
            ProjectionExpression="PK, SK",
        ))
        with self._table.batch_writer() as batch:
            for item in stale:
                batch.delete_item(Key={"PK": item["PK"], "SK": item["SK"]})
        return len(stale)

    # ---- videos ----

    @staticmethod
    def _video_key(video_id: str) -> dict[str, str]:
        return {"PK": f"VIDEO#{video_id}", "SK": "VIDEO"}

    def create_video(self, video: Video) -> bool:
        now = _utcnow()
        video.created_at = video.created_at or now
        video.updated_at = now
        return self._put_if_absent({
            **self._video_key(video.video_id),
            "version": video.version,
            "doc": video.model_dump_json(),
        })

    def get_video(self, video_id: str) -> Video | None:
        item = self._table.get_item(Key=self._video_key(video_id)).get("Item")
        return Video.model_validate_json(item["doc"]) if item else None

    def update_video(self, video: Video) -> Video:
        updated = video.model_copy(deep=True)
        updated.version = video.version + 1
        updated.updated_at = _utcnow()
        try:
            self._table.put_item(
                Item={
                    **self._video_key(video.video_id),
                    "version": updated.version,
                    "doc": updated.model_dump_json(),
                },
                ConditionExpression="attribute_exists(PK) AND #v = :expected",
                ExpressionAttributeNames={"#v": "version"},
                ExpressionAttributeValues={":expected": video.version},
            )
        except ClientError as exc:
            if _is_conditional_failure(exc):
                raise ConcurrentUpdateError(
                    f"Video {video.video_id} changed since version {video.version}"
                ) from exc
            raise StorageError(f"DynamoDB video update failed for {video.video_id}: {exc}") from exc
        return updated

    # ---- ledgers ----

    def append_cost_log(self, entry: CostLogEntry) -> None:
        entry.created_at = entry.created_at or _utcnow()
        suffix = entry.entry_id or f"{_iso(entry.created_at)}#{uuid.uuid4().hex[:8]}"
        self._table.put_item(Item={
            "PK": f"VIDEO#{entry.video_id}",
            "SK": f"COST#{suffix}",
            "cost": Decimal(str(entry.cost)),
            "doc": entry.model_dump_json(),
        })

    def total_cost(self, video_id: str) -> float:
        items = self._query(
            KeyConditionExpression=Key("PK").eq(f"VIDEO#{video_id}") & Key("SK").begins_with("COST#"),
        )
        return float(sum(i.get("cost", 0) for i in items))

    def save_policy_run(self, record: PolicyRunRecord) -> None:
        record.created_at = record.created_at or _utcnow()
        self._table.put_item(Item={
            "PK": f"VIDEO#{record.video_id}",
            "SK": f"POLICY#{record.stage.value}#{_iso(record.created_at)}",
            "status": record.status.value,
            "doc": record.model_dump_json(),
        })

    def cost_logs(self, video_id: str) -> list[CostLogEntry]:
        items = self._query(
            KeyConditionExpression=Key("PK").eq(f"VIDEO#{video_id}") & Key("SK").begins_with("COST#"),
        )
        return [CostLogEntry.model_validate_json(i["doc"]) for i in items]

    def policy_runs(self, video_id: str) -> list[PolicyRunRecord]:
        items = self._query(
            KeyConditionExpression=Key("PK").eq(f"VIDEO#{video_id}") & Key("SK").begins_with("POLICY#"),
        )
        return [PolicyRunRecord.model_validate_json(i["doc"]) for i in items]
