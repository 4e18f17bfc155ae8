import asyncio
from logging import getLogger
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict

from .backoff import Backoff
from .data import Data
from .job import (
    Configuration,
    EncryptionConfiguration,
    ErrorProto,
    ExplainQueryStage,
    ExplainQueryStep,
    Job,
    JobReference,
    Query,
    StateQuery,
    TableReference,
)
from .updater import Priority, QueryJobConfig

logger = getLogger(__name__)


def _to_int(value) -> Optional[int]:
    # 取得できない/数値でない場合はNoneを返す
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class Step(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Optional[str] = None
    substeps: List[str] = []

    @classmethod
    def from_api(cls, gapi: ExplainQueryStep) -> "Step":
        return cls(kind=gapi.kind, substeps=list(gapi.substeps or []))


class Stage(BaseModel):
    """クエリプランの1ステージ. ratioは単位なしの相対値"""

    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    name: Optional[str] = None
    status: Optional[str] = None
    compute_ratio_avg: Optional[float] = None
    compute_ratio_max: Optional[float] = None
    read_ratio_avg: Optional[float] = None
    read_ratio_max: Optional[float] = None
    wait_ratio_avg: Optional[float] = None
    wait_ratio_max: Optional[float] = None
    write_ratio_avg: Optional[float] = None
    write_ratio_max: Optional[float] = None
    records_read: Optional[int] = None
    records_written: Optional[int] = None
    steps: List[Step] = []

    @classmethod
    def from_api(cls, gapi: ExplainQueryStage) -> "Stage":
        return cls(
            id=_to_int(gapi.id),
            name=gapi.name,
            status=gapi.status,
            compute_ratio_avg=gapi.computeRatioAvg,
            compute_ratio_max=gapi.computeRatioMax,
            read_ratio_avg=gapi.readRatioAvg,
            read_ratio_max=gapi.readRatioMax,
            wait_ratio_avg=gapi.waitRatioAvg,
            wait_ratio_max=gapi.waitRatioMax,
            write_ratio_avg=gapi.writeRatioAvg,
            write_ratio_max=gapi.writeRatioMax,
            records_read=_to_int(gapi.recordsRead),
            records_written=_to_int(gapi.recordsWritten),
            steps=[Step.from_api(step) for step in gapi.steps or []],
        )


class RemoteJobError(BaseModel):
    """ジョブがエラーで終了した場合の内容. 例外としては投げない"""

    model_config = ConfigDict(frozen=True)

    reason: Optional[str] = None
    message: Optional[str] = None
    location: Optional[str] = None
    debug_info: Optional[str] = None

    @classmethod
    def from_api(cls, gapi: ErrorProto) -> "RemoteJobError":
        return cls(
            reason=gapi.reason,
            message=gapi.message,
            location=gapi.location,
            debug_info=gapi.debugInfo,
        )


class QueryJob:
    """投入済みクエリジョブ. リモートのジョブ状態を読み取るキャッシュとして振る舞う.

    状態の更新はreload()/wait_until_done()を呼んだときだけ行う.
    結果のスキーマは一度取得したら以後は取り直さない.
    """

    def __init__(self, job: Job, service):
        self._job = job
        self.service = service
        self._destination_schema: Optional[Dict[str, Any]] = None
        self._schema_lock = asyncio.Lock()

    @classmethod
    def from_api_json(cls, json: Dict[str, Any], service) -> "QueryJob":
        return cls(Job.model_validate(json), service)

    def __repr__(self):
        return f"<QueryJob {self.project_id}:{self.job_id} state={self.state}>"

    @property
    def job_id(self) -> Optional[str]:
        ref = self._job.jobReference
        return ref.jobId if ref else None

    @property
    def project_id(self) -> Optional[str]:
        ref = self._job.jobReference
        return ref.projectId if ref else None

    @property
    def location(self) -> Optional[str]:
        ref = self._job.jobReference
        return ref.location if ref else None

    @property
    def state(self) -> Optional[str]:
        return self._job.status.state if self._job.status else None

    @property
    def pending(self) -> bool:
        return self.state == "PENDING"

    @property
    def running(self) -> bool:
        return self.state == "RUNNING"

    @property
    def done(self) -> bool:
        return self.state == "DONE"

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def error(self) -> Optional[RemoteJobError]:
        status = self._job.status
        if status is None or status.errorResult is None:
            return None
        return RemoteJobError.from_api(status.errorResult)

    @property
    def errors(self) -> List[RemoteJobError]:
        status = self._job.status
        if status is None:
            return []
        return [RemoteJobError.from_api(e) for e in status.errors or []]

    @property
    def config(self) -> QueryJobConfig:
        return QueryJobConfig(
            job_reference=self._job.jobReference or JobReference(),
            configuration=self._job.configuration or Configuration(),
        )

    @property
    def _query(self) -> Query:
        configuration = self._job.configuration
        if configuration is None or configuration.query is None:
            return Query()
        return configuration.query

    @property
    def _statistics(self) -> StateQuery:
        statistics = self._job.statistics
        if statistics is None or statistics.query is None:
            return StateQuery()
        return statistics.query

    @property
    def query(self) -> Optional[str]:
        return self._query.query

    @property
    def priority(self) -> str:
        return self._query.priority or Priority.INTERACTIVE.value

    @property
    def batch(self) -> bool:
        return self._query.priority == Priority.BATCH.value

    @property
    def interactive(self) -> bool:
        val = self._query.priority
        if val is None:
            return True
        return val == Priority.INTERACTIVE.value

    @property
    def large_results(self) -> bool:
        val = self._query.allowLargeResults
        return False if val is None else val

    @property
    def cache(self) -> bool:
        val = self._query.useQueryCache
        return True if val is None else val

    @property
    def flatten(self) -> bool:
        val = self._query.flattenResults
        return True if val is None else val

    @property
    def legacy_sql(self) -> bool:
        val = self._query.useLegacySql
        return True if val is None else val

    @property
    def standard_sql(self) -> bool:
        return not self.legacy_sql

    @property
    def maximum_billing_tier(self) -> Optional[int]:
        return self._query.maximumBillingTier

    @property
    def maximum_bytes_billed(self) -> Optional[int]:
        return _to_int(self._query.maximumBytesBilled)

    @property
    def labels(self) -> Dict[str, str]:
        configuration = self._job.configuration
        if configuration is None or configuration.labels is None:
            return {}
        return dict(configuration.labels)

    @property
    def udfs(self) -> Optional[List[str]]:
        resources = self._query.userDefinedFunctionResources
        if resources is None:
            return None
        return [udf.inlineCode or udf.resourceUri for udf in resources]

    @property
    def encryption(self) -> Optional[EncryptionConfiguration]:
        return self._query.destinationEncryptionConfiguration

    @property
    def destination_table(self) -> Optional[TableReference]:
        return self._query.destinationTable

    @property
    def cache_hit(self) -> bool:
        return bool(self._statistics.cacheHit)

    @property
    def bytes_processed(self) -> Optional[int]:
        return _to_int(self._statistics.totalBytesProcessed)

    @property
    def query_plan(self) -> Optional[List[Stage]]:
        plan = self._statistics.queryPlan
        if plan is None:
            return None
        return [Stage.from_api(stage) for stage in plan]

    async def destination(self):
        table = self.destination_table
        if table is None:
            return None
        return await self.service.retrieve_table(
            table.projectId, table.datasetId, table.tableId
        )

    async def reload(self) -> "QueryJob":
        json = await self.service.get_job(
            self.job_id, project_id=self.project_id, location=self.location
        )
        self._job = Job.model_validate(json)
        return self

    async def wait_until_done(self, backoff: Optional[Backoff] = None) -> None:
        """ジョブが終了するまでポーリングし, 最後に状態を取り直す"""
        if self.done:
            return
        if backoff is None:
            backoff = Backoff.from_settings()
        while True:
            try:
                json = await self._probe()
            except httpx.HTTPStatusError:
                # エラー終了したジョブはgetQueryResultsが4xxを返すので, ジョブ自体の状態で判断する
                await self.reload()
                if self.done:
                    logger.debug(f"query job finished with error: {self}")
                    return
                raise
            if json.get("jobComplete"):
                self._fill_schema(json.get("schema"))
                break
            logger.debug(f"waiting for query job: {self}")
            await backoff.sleep()
        await self.reload()

    async def data(
        self,
        token: Optional[str] = None,
        max_results: Optional[int] = None,
        start_index: Optional[int] = None,
    ) -> Optional[Data]:
        if not self.done:
            return None
        await self._ensure_schema()
        table = self.destination_table
        if table is None:
            logger.debug(f"no destination table: {self}")
            return None
        json = await self.service.list_tabledata(
            table.datasetId,
            table.tableId,
            token=token,
            max_results=max_results,
            start_index=start_index,
            project_id=table.projectId,
        )
        return Data.from_api_json(json, table, self._destination_schema, self.service)

    query_results = data

    async def _probe(self) -> Dict[str, Any]:
        # maxResults=0 で行は取らずに状態とスキーマだけ取得する
        return await self.service.job_query_results(
            self.job_id, max_results=0, project_id=self.project_id, location=self.location
        )

    def _fill_schema(self, schema: Optional[Dict[str, Any]]):
        if self._destination_schema is None and schema is not None:
            self._destination_schema = schema

    async def _ensure_schema(self):
        if self._destination_schema is not None:
            return
        # 同時に呼ばれてもリクエストは1回だけにする
        async with self._schema_lock:
            if self._destination_schema is not None:
                return
            logger.debug(f"resolve destination schema: {self}")
            json = await self._probe()
            self._fill_schema(json.get("schema"))
