from logging import getLogger
from typing import Any, Callable, Dict, Optional

import httplib2
import httpx
from google.cloud import bigquery
from oauth2client.service_account import ServiceAccountCredentials
from pydantic_settings import BaseSettings, SettingsConfigDict

from .backoff import Backoff, PollSettings
from .exceptions import SubmissionError
from .query_job import QueryJob
from .updater import QueryJobUpdater, parse_table_name

logger = getLogger(__name__)

TIMEOUT = 60


class EndPoint:
    endpoint = "https://bigquery.googleapis.com/bigquery/v2/projects/{projectId}"
    jobs = "/jobs"
    job = "/jobs/{jobId}"
    query_results = "/queries/{jobId}"
    table = "/datasets/{datasetId}/tables/{tableId}"
    tabledata = "/datasets/{datasetId}/tables/{tableId}/data"

    def __getattribute__(self, attr):
        endpoint = super().__getattribute__("endpoint")
        return endpoint + super().__getattribute__(attr)


class Env(BaseSettings):
    google_application_credentials: str

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class Credential:
    _credentials = None

    scopes = [
        "https://www.googleapis.com/auth/bigquery",
        "https://www.googleapis.com/auth/cloud-platform",
    ]

    @classmethod
    def _update_credential(cls):
        if cls._credentials is None:
            cls._credentials = ServiceAccountCredentials.from_json_keyfile_name(
                Env().google_application_credentials, scopes=cls.scopes
            )
            cls._credentials.refresh(httplib2.Http())
        elif cls._credentials.access_token_expired:
            cls._credentials.refresh(httplib2.Http())

    @classmethod
    def get_headers(cls, headers=None):
        if headers is None:
            headers = {"Accept": "application/json", "Content-Type": "application/json"}
        cls._update_credential()
        cls._credentials.apply(headers)
        return headers


class Client:
    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None, credential=Credential):
        limits = httpx.Limits(max_keepalive_connections=10, max_connections=100)
        self._client = httpx.AsyncClient(limits=limits, transport=transport)
        self._credential = credential

    async def __aenter__(self) -> "Client":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        await self._client.aclose()

    async def post(self, endpoint, json, params=None, timeout=TIMEOUT, call_back=None):
        r = await self._client.post(
            url=endpoint,
            headers=self._credential.get_headers(),
            params=params,
            json=json,
            timeout=timeout,
        )
        if call_back is not None:
            call_back(r)
        r.raise_for_status()
        return r

    async def get(self, endpoint, params=None, timeout=TIMEOUT, call_back=None):
        r = await self._client.get(
            url=endpoint,
            headers=self._credential.get_headers(),
            params=params,
            timeout=timeout,
        )
        if call_back is not None:
            call_back(r)
        r.raise_for_status()
        return r


class BQ(Client):
    def __init__(
        self,
        project_id: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        credential=Credential,
        poll_settings: Optional[PollSettings] = None,
    ):
        self._project_id = project_id
        self.poll_settings = poll_settings or PollSettings()
        super().__init__(transport=transport, credential=credential)

    @property
    def project_id(self) -> str:
        return self._project_id

    async def query_job(
        self,
        query: str,
        job_id: Optional[str] = None,
        prefix: Optional[str] = None,
        configure: Optional[Callable[[QueryJobUpdater], None]] = None,
        **options,
    ) -> QueryJob:
        """クエリジョブを投入する. 完了は待たない

        Args:
            query: SQL
            job_id: 省略時はprefix + ランダムな文字列で生成する
            prefix: 生成するjob_idの接頭辞
            configure: 投入前にQueryJobUpdaterを受け取って設定を変更する関数
            **options: QueryJobOptionsのフィールド
        """
        updater = QueryJobUpdater.from_options(
            query, options, project=self._project_id, job_id=job_id, prefix=prefix
        )
        if configure is not None:
            configure(updater)
        config = updater.build()
        logger.debug(f"begin BQ query job {config.job_reference.jobId}: {query}")
        json = await self.insert_job(config.to_api_repr())
        return QueryJob.from_api_json(json, self)

    async def query(self, query: str, **kwargs) -> QueryJob:
        """投入して完了まで待つ"""
        job = await self.query_job(query, **kwargs)
        await job.wait_until_done(Backoff.from_settings(self.poll_settings))
        return job

    # https://cloud.google.com/bigquery/docs/reference/rest/v2/jobs/insert
    async def insert_job(self, resource: Dict[str, Any]) -> Dict[str, Any]:
        project_id = resource.get("jobReference", {}).get("projectId") or self._project_id
        endpoint = EndPoint().jobs.format(projectId=project_id)

        def error(r):
            if not r.is_error:
                return
            try:
                json = r.json()
            except ValueError:
                json = {"error": {"message": r.text}}
            exc = SubmissionError.from_response_json(json, r.status_code)
            logger.error(f"Submission Error: {exc}")
            raise exc

        r = await self.post(endpoint=endpoint, json=resource, call_back=error)
        return r.json()

    # https://cloud.google.com/bigquery/docs/reference/rest/v2/jobs/get
    async def get_job(
        self, job_id: str, project_id: Optional[str] = None, location: Optional[str] = None
    ) -> Dict[str, Any]:
        endpoint = EndPoint().job.format(projectId=project_id or self._project_id, jobId=job_id)
        params = {}
        if location is not None:
            params["location"] = location
        r = await self.get(endpoint, params=params)
        return r.json()

    # https://cloud.google.com/bigquery/docs/reference/rest/v2/jobs/getQueryResults
    async def job_query_results(
        self,
        job_id: str,
        max_results: Optional[int] = 0,
        project_id: Optional[str] = None,
        location: Optional[str] = None,
        timeout_ms: Optional[int] = None,
    ) -> Dict[str, Any]:
        if timeout_ms is None:
            timeout_ms = self.poll_settings.timeout_ms
        endpoint = EndPoint().query_results.format(
            projectId=project_id or self._project_id, jobId=job_id
        )
        params = {"timeoutMs": str(timeout_ms)}
        if max_results is not None:
            params["maxResults"] = str(max_results)
        if location is not None:
            params["location"] = location
        r = await self.get(endpoint, params=params, timeout=timeout_ms / 1000 + TIMEOUT)
        return r.json()

    # https://cloud.google.com/bigquery/docs/reference/rest/v2/tabledata/list
    async def list_tabledata(
        self,
        dataset_id: str,
        table_id: str,
        token: Optional[str] = None,
        max_results: Optional[int] = None,
        start_index: Optional[int] = None,
        project_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        endpoint = EndPoint().tabledata.format(
            projectId=project_id or self._project_id, datasetId=dataset_id, tableId=table_id
        )
        params = {}
        if token is not None:
            params["pageToken"] = token
        if max_results is not None:
            params["maxResults"] = str(max_results)
        if start_index is not None:
            params["startIndex"] = str(start_index)
        logger.debug(f"list tabledata {dataset_id}.{table_id}: {params}")
        r = await self.get(endpoint, params=params)
        return r.json()

    def parse_table_name(self, table: str) -> Dict[str, str]:
        return parse_table_name(table, self._project_id)

    # https://cloud.google.com/bigquery/docs/reference/rest/v2/tables/get
    async def get_table(self, table: str) -> Dict[str, Any]:
        ep = EndPoint().table.format(**self.parse_table_name(table))
        r = await self.get(ep)
        return r.json()

    async def retrieve_table(
        self, project_id: Optional[str], dataset_id: str, table_id: str
    ) -> bigquery.Table:
        json = await self.get_table(f"{project_id or self._project_id}.{dataset_id}.{table_id}")
        return bigquery.Table.from_api_repr(json)
