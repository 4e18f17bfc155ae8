import asyncio

import httpx
import pytest
from syncer import sync

from bqjob import Backoff, Data, QueryJob
from conftest import SCHEMA, FakeService, make_job_json


@sync
async def test_wait_until_done_on_done_job_does_not_poll(done_job, service, no_wait):
    await done_job.wait_until_done(no_wait)
    assert service.calls == []


@sync
async def test_wait_until_done_polls_until_complete(no_wait):
    service = FakeService(
        job_json=make_job_json(state="DONE"),
        probes=[
            {"jobComplete": False},
            {"jobComplete": False},
            {"jobComplete": True, "schema": SCHEMA},
        ],
    )
    job = QueryJob.from_api_json(make_job_json(state="RUNNING"), service)
    await job.wait_until_done(no_wait)

    assert service.count("job_query_results") == 3
    assert all(call[2] == 0 for call in service.calls if call[0] == "job_query_results")
    assert service.count("get_job") == 1
    assert job.done


@sync
async def test_wait_until_done_backs_off_between_polls(monkeypatch):
    slept = []

    async def fake_sleep(delay):
        slept.append(delay)

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)
    service = FakeService(
        probes=[{"jobComplete": False}] * 5 + [{"jobComplete": True, "schema": SCHEMA}]
    )
    job = QueryJob.from_api_json(make_job_json(state="RUNNING"), service)
    await job.wait_until_done(Backoff(initial=1, multiplier=2, maximum=5))
    assert slept == [1, 2, 4, 5, 5]


def _status_error(code):
    request = httpx.Request("GET", "https://bigquery.googleapis.com/bigquery/v2/projects/p/queries/j")
    return httpx.HTTPStatusError(
        f"{code}", request=request, response=httpx.Response(code, request=request)
    )


@sync
async def test_wait_until_done_reads_failure_from_job(no_wait):
    service = FakeService(
        job_json=make_job_json(
            state="DONE", status={"errorResult": {"reason": "invalidQuery", "message": "bad"}}
        ),
        probes=[_status_error(400)],
    )
    job = QueryJob.from_api_json(make_job_json(state="RUNNING"), service)
    await job.wait_until_done(no_wait)
    assert job.done
    assert job.failed
    assert job.error.reason == "invalidQuery"
    assert service.count("get_job") == 1


@sync
async def test_wait_until_done_reraises_status_error_while_running(no_wait):
    service = FakeService(
        job_json=make_job_json(state="RUNNING"), probes=[_status_error(403)]
    )
    job = QueryJob.from_api_json(make_job_json(state="RUNNING"), service)
    with pytest.raises(httpx.HTTPStatusError):
        await job.wait_until_done(no_wait)
    assert job.running


@sync
async def test_wait_until_done_caches_schema(running_job, service, no_wait):
    await running_job.wait_until_done(no_wait)
    probes = service.count("job_query_results")

    data = await running_job.data()
    assert service.count("job_query_results") == probes
    assert data.schema == SCHEMA


@sync
async def test_data_on_running_job_is_none(running_job, service):
    assert await running_job.data() is None
    assert service.calls == []


@sync
async def test_data_resolves_schema_once(done_job, service):
    await done_job.data()
    await done_job.data(max_results=10)
    assert service.count("job_query_results") == 1
    assert service.count("list_tabledata") == 2


@sync
async def test_schema_is_not_refetched_after_remote_change(done_job, service):
    await done_job.data()
    service.probes = [{"jobComplete": True, "schema": {"fields": []}}]
    data = await done_job.data()
    assert data.schema == SCHEMA


@sync
async def test_concurrent_data_calls_share_one_schema_probe(done_job, service):
    await asyncio.gather(done_job.data(), done_job.data(), done_job.data())
    assert service.count("job_query_results") == 1


@sync
async def test_data_pages():
    pages = {
        None: {
            "totalRows": "3",
            "pageToken": "t2",
            "rows": [{"f": [{"v": "a"}, {"v": "1"}]}, {"f": [{"v": "b"}, {"v": "2"}]}],
        },
        "t2": {"totalRows": "3", "rows": [{"f": [{"v": "c"}, {"v": None}]}]},
    }
    service = FakeService(pages=pages)
    job = QueryJob.from_api_json(make_job_json(state="DONE"), service)

    data = await job.data(max_results=2, start_index=0)
    assert isinstance(data, Data)
    assert data == [{"word": "a", "count": 1}, {"word": "b", "count": 2}]
    assert data.total == 3
    assert data.token == "t2"
    assert data.headers == ["word", "count"]
    assert service.calls[-1] == ("list_tabledata", "_anon", "anon123", None, 2, 0)

    second = await data.next_page()
    assert second == [{"word": "c", "count": None}]
    assert second.has_next is False
    assert await second.next_page() is None

    rows = [row async for row in data.all()]
    assert [row["word"] for row in rows] == ["a", "b", "c"]

    restarted = await job.data(token="t2")
    assert restarted == second


@sync
async def test_query_results_alias(done_job, service):
    assert await done_job.query_results() == []
    assert service.count("list_tabledata") == 1


@sync
async def test_reload_keeps_schema(done_job, service):
    await done_job.data()
    await done_job.reload()
    await done_job.data()
    assert service.count("job_query_results") == 1
    assert service.calls[-2][0] == "get_job"


@sync
async def test_destination(done_job, service):
    service.table = object()
    assert await done_job.destination() is service.table
    assert service.calls[-1] == ("retrieve_table", "my-project", "_anon", "anon123")


@sync
async def test_destination_without_table(service):
    job_json = make_job_json(state="DONE")
    del job_json["configuration"]["query"]["destinationTable"]
    job = QueryJob.from_api_json(job_json, service)
    assert await job.destination() is None
    assert await job.data() is None


def test_error_is_inspected_not_raised(service):
    job = QueryJob.from_api_json(
        make_job_json(
            state="DONE",
            status={
                "errorResult": {"reason": "bytesBilledLimitExceeded", "message": "too big"},
                "errors": [{"reason": "bytesBilledLimitExceeded", "message": "too big"}],
            },
            statistics={"query": {"totalBytesProcessed": "2048"}},
        ),
        service,
    )
    assert job.done
    assert job.failed
    assert job.error.reason == "bytesBilledLimitExceeded"
    assert len(job.errors) == 1
    assert job.bytes_processed == 2048


def test_accessor_defaults(service):
    job = QueryJob.from_api_json(make_job_json(state="PENDING"), service)
    assert job.pending
    assert not job.failed
    assert job.interactive
    assert not job.batch
    assert job.priority == "INTERACTIVE"
    assert job.legacy_sql
    assert not job.standard_sql
    assert job.cache
    assert job.flatten
    assert not job.large_results
    assert job.udfs is None
    assert job.encryption is None
    assert job.labels == {}
    assert job.maximum_bytes_billed is None
    assert job.bytes_processed is None
    assert job.cache_hit is False
    assert job.query_plan is None


def test_accessors(service):
    job = QueryJob.from_api_json(
        make_job_json(
            state="DONE",
            priority="BATCH",
            useLegacySql=False,
            maximumBytesBilled="1000",
            maximumBillingTier=2,
            userDefinedFunctionResources=[
                {"resourceUri": "gs://bucket/f.js"},
                {"inlineCode": "function(x){return x}"},
            ],
            destinationEncryptionConfiguration={"kmsKeyName": "k"},
            labels={"env": "dev"},
        ),
        service,
    )
    assert job.batch
    assert not job.interactive
    assert job.standard_sql
    assert job.maximum_bytes_billed == 1000
    assert job.maximum_billing_tier == 2
    assert job.udfs == ["gs://bucket/f.js", "function(x){return x}"]
    assert job.encryption.kmsKeyName == "k"
    assert job.labels == {"env": "dev"}
    assert job.config.configuration.query.priority == "BATCH"


def test_unparseable_numbers_are_none(service):
    job = QueryJob.from_api_json(
        make_job_json(
            state="DONE",
            maximumBytesBilled="lots",
            statistics={"query": {"totalBytesProcessed": "n/a"}},
        ),
        service,
    )
    assert job.maximum_bytes_billed is None
    assert job.bytes_processed is None


def test_query_plan(service):
    plan = [
        {
            "id": "1",
            "name": "S00: Input",
            "status": "COMPLETE",
            "computeRatioAvg": 0.5,
            "computeRatioMax": 1.0,
            "readRatioAvg": 0.25,
            "readRatioMax": 0.75,
            "recordsRead": "100",
            "recordsWritten": "10",
            "steps": [
                {"kind": "READ", "substeps": ["$1:word", "FROM t"]},
                {"kind": "WRITE"},
            ],
        }
    ]
    job = QueryJob.from_api_json(
        make_job_json(state="DONE", statistics={"query": {"queryPlan": plan, "cacheHit": True}}),
        service,
    )
    (stage,) = job.query_plan
    assert stage.id == 1
    assert stage.name == "S00: Input"
    assert stage.records_read == 100
    assert stage.records_written == 10
    assert stage.wait_ratio_avg is None
    assert [step.kind for step in stage.steps] == ["READ", "WRITE"]
    assert stage.steps[0].substeps == ["$1:word", "FROM t"]
    assert stage.steps[1].substeps == []
    assert job.cache_hit is True
