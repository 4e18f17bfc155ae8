import asyncio
import copy
from typing import Optional

import pytest
from pydantic_settings import BaseSettings, SettingsConfigDict

from bqjob import Backoff, QueryJob

SCHEMA = {
    "fields": [
        {"name": "word", "type": "STRING", "mode": "NULLABLE"},
        {"name": "count", "type": "INTEGER", "mode": "NULLABLE"},
    ]
}


class Env(BaseSettings):
    project_name: Optional[str] = None

    model_config = SettingsConfigDict(env_prefix="test_", env_file=".env", extra="ignore")


def make_job_json(state="RUNNING", statistics=None, status=None, labels=None, **query):
    query.setdefault("query", "SELECT word, count FROM t")
    query.setdefault(
        "destinationTable",
        {"projectId": "my-project", "datasetId": "_anon", "tableId": "anon123"},
    )
    configuration = {"query": query}
    if labels is not None:
        configuration["labels"] = labels
    json = {
        "jobReference": {"projectId": "my-project", "jobId": "job_abc", "location": "US"},
        "configuration": configuration,
        "status": dict(status or {}, state=state),
    }
    if statistics is not None:
        json["statistics"] = statistics
    return json


class FakeService:
    """リモートのjobs/queries/tabledata APIの代わり. 呼び出しを記録する"""

    def __init__(self, job_json=None, probes=None, pages=None, table=None):
        self.job_json = job_json or make_job_json(state="DONE")
        self.probes = list(probes or [{"jobComplete": True, "schema": SCHEMA}])
        self.pages = pages or {None: {"totalRows": "0", "rows": []}}
        self.table = table
        self.calls = []

    def count(self, name):
        return sum(1 for call in self.calls if call[0] == name)

    async def job_query_results(
        self, job_id, max_results=0, project_id=None, location=None, timeout_ms=None
    ):
        self.calls.append(("job_query_results", job_id, max_results))
        probe = self.probes.pop(0) if len(self.probes) > 1 else self.probes[0]
        if isinstance(probe, Exception):
            raise probe
        return probe

    async def get_job(self, job_id, project_id=None, location=None):
        self.calls.append(("get_job", job_id, project_id, location))
        return copy.deepcopy(self.job_json)

    async def list_tabledata(
        self,
        dataset_id,
        table_id,
        token=None,
        max_results=None,
        start_index=None,
        project_id=None,
    ):
        self.calls.append(
            ("list_tabledata", dataset_id, table_id, token, max_results, start_index)
        )
        return self.pages[token]

    async def retrieve_table(self, project_id, dataset_id, table_id):
        self.calls.append(("retrieve_table", project_id, dataset_id, table_id))
        return self.table


@pytest.fixture(autouse=True)
def event_loop_for_sync():
    # syncer.syncはasyncio.get_event_loop()のループで実行する
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    yield loop
    asyncio.set_event_loop(None)
    loop.close()


@pytest.fixture
def no_wait():
    return Backoff(initial=0, multiplier=1, maximum=0)


@pytest.fixture
def service():
    return FakeService()


@pytest.fixture
def running_job(service):
    return QueryJob.from_api_json(make_job_json(state="RUNNING"), service)


@pytest.fixture
def done_job(service):
    return QueryJob.from_api_json(make_job_json(state="DONE"), service)


@pytest.fixture
def project_name():
    name = Env().project_name
    if name is None:
        pytest.skip("TEST_PROJECT_NAME is not set")
    return name
