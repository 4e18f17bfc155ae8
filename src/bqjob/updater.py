import copy
import datetime
import decimal
import uuid
from collections.abc import Mapping
from enum import Enum
from logging import getLogger
from typing import Any, Dict, List, Optional, Union

from google.cloud import bigquery
from pydantic import BaseModel, ConfigDict, ValidationError

from .exceptions import InvalidConfiguration
from .job import (
    Configuration,
    DatasetReference,
    EncryptionConfiguration,
    Job,
    JobReference,
    Query,
    TableReference,
    UserDefinedFunctionResource,
)

logger = getLogger(__name__)

DEFAULT_JOB_PREFIX = "job_"


class Priority(str, Enum):
    INTERACTIVE = "INTERACTIVE"
    BATCH = "BATCH"


class ParameterMode(str, Enum):
    NONE = "NONE"
    POSITIONAL = "POSITIONAL"
    NAMED = "NAMED"


class CreateDisposition(str, Enum):
    CREATE_IF_NEEDED = "CREATE_IF_NEEDED"
    CREATE_NEVER = "CREATE_NEVER"


class WriteDisposition(str, Enum):
    WRITE_TRUNCATE = "WRITE_TRUNCATE"
    WRITE_APPEND = "WRITE_APPEND"
    WRITE_EMPTY = "WRITE_EMPTY"


_PRIORITIES = {"batch": Priority.BATCH, "interactive": Priority.INTERACTIVE}

_CREATE_DISPOSITIONS = {
    "needed": CreateDisposition.CREATE_IF_NEEDED,
    "create_if_needed": CreateDisposition.CREATE_IF_NEEDED,
    "if_needed": CreateDisposition.CREATE_IF_NEEDED,
    "never": CreateDisposition.CREATE_NEVER,
    "create_never": CreateDisposition.CREATE_NEVER,
}

_WRITE_DISPOSITIONS = {
    "truncate": WriteDisposition.WRITE_TRUNCATE,
    "write_truncate": WriteDisposition.WRITE_TRUNCATE,
    "append": WriteDisposition.WRITE_APPEND,
    "write_append": WriteDisposition.WRITE_APPEND,
    "empty": WriteDisposition.WRITE_EMPTY,
    "write_empty": WriteDisposition.WRITE_EMPTY,
}


class QueryJobOptions(BaseModel):
    """from_optionsが受け付けるオプション. 未知のキーはエラー"""

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    dataset: Any = None
    project: Optional[str] = None
    params: Any = None
    create: Optional[Union[CreateDisposition, str]] = None
    write: Optional[Union[WriteDisposition, str]] = None
    table: Any = None
    maximum_bytes_billed: Optional[int] = None
    maximum_billing_tier: Optional[int] = None
    labels: Optional[Dict[str, str]] = None
    standard_sql: Optional[bool] = None
    legacy_sql: Optional[bool] = None
    external: Optional[Dict[str, Any]] = None
    priority: Optional[Union[Priority, str]] = None
    cache: Optional[bool] = None
    large_results: Optional[bool] = None
    flatten: Optional[bool] = None
    udfs: Optional[Union[str, List[str]]] = None
    encryption: Any = None


class QueryJobConfig:
    """投入用に固定された設定. 以降は変更できない

    ダンプした辞書だけを保持し, 参照のたびにモデルを作り直すので
    返したモデルを書き換えてもこの設定には影響しない.
    """

    __slots__ = ("_resource",)

    def __init__(self, job_reference: JobReference, configuration: Configuration):
        resource = {
            "jobReference": job_reference.to_api_repr(),
            "configuration": configuration.to_api_repr(),
        }
        object.__setattr__(self, "_resource", copy.deepcopy(resource))

    def __setattr__(self, name, value):
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __delattr__(self, name):
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __eq__(self, other):
        if not isinstance(other, QueryJobConfig):
            return NotImplemented
        return self._resource == other._resource

    __hash__ = None

    def __repr__(self):
        return f"QueryJobConfig({self._resource!r})"

    @property
    def job_reference(self) -> JobReference:
        return JobReference.model_validate(copy.deepcopy(self._resource["jobReference"]))

    @property
    def configuration(self) -> Configuration:
        return Configuration.model_validate(copy.deepcopy(self._resource["configuration"]))

    def to_api_repr(self) -> Dict[str, Any]:
        return copy.deepcopy(self._resource)


def generate_id() -> str:
    return uuid.uuid4().hex


def job_ref_from(
    project: Optional[str], job_id: Optional[str] = None, prefix: Optional[str] = None
) -> JobReference:
    # 同じjob_idで再投入すればBigQuery側で重複が弾かれる
    if job_id is None:
        job_id = f"{prefix or DEFAULT_JOB_PREFIX}{generate_id()}"
    return JobReference(projectId=project, jobId=job_id)


def resolve_legacy_sql(standard_sql: Optional[bool], legacy_sql: Optional[bool]) -> bool:
    """standard_sqlが指定されていればそちらを優先する"""
    if standard_sql is not None:
        if legacy_sql is not None and legacy_sql == standard_sql:
            logger.warning(
                f"standard_sql={standard_sql} conflicts with legacy_sql={legacy_sql}, "
                "standard_sql takes precedence"
            )
        return not standard_sql
    if legacy_sql is not None:
        return legacy_sql
    return False


def parse_table_name(table: str, project: Optional[str] = None) -> Dict[str, str]:
    s = table.replace(":", ".", 1).split(".")
    epf = {}
    if len(s) == 3:
        epf["projectId"] = s[0]
        epf["datasetId"] = s[1]
        epf["tableId"] = s[2]
    elif len(s) == 2 and project is not None:
        epf["projectId"] = project
        epf["datasetId"] = s[0]
        epf["tableId"] = s[1]
    else:
        raise InvalidConfiguration(
            f'table must be "projectId.datasetId.tableId" or "datasetId.tableId": {table}'
        )
    return epf


def _project_of(obj) -> Optional[str]:
    return getattr(obj, "project_id", None) or getattr(obj, "project", None)


def table_ref_from(tbl, project: Optional[str] = None) -> Optional[TableReference]:
    if tbl is None:
        return None
    if isinstance(tbl, TableReference):
        return tbl.model_copy()
    if isinstance(tbl, str):
        return TableReference(**parse_table_name(tbl, project))
    try:
        return TableReference(
            projectId=_project_of(tbl) or project,
            datasetId=tbl.dataset_id,
            tableId=tbl.table_id,
        )
    except AttributeError as e:
        raise InvalidConfiguration(f"not a table: {tbl!r}") from e


def dataset_ref_from(
    dts, pjt: Optional[str] = None, project: Optional[str] = None
) -> Optional[DatasetReference]:
    if dts is None:
        return None
    if isinstance(dts, DatasetReference):
        return dts.model_copy()
    if hasattr(dts, "dataset_id"):
        return DatasetReference(
            projectId=pjt or _project_of(dts) or project, datasetId=dts.dataset_id
        )
    return DatasetReference(projectId=pjt or project, datasetId=str(dts))


def encryption_from(value) -> Optional[EncryptionConfiguration]:
    if value is None:
        return None
    if isinstance(value, EncryptionConfiguration):
        return value.model_copy()
    if isinstance(value, str):
        return EncryptionConfiguration(kmsKeyName=value)
    if hasattr(value, "to_api_repr"):
        return EncryptionConfiguration.model_validate(value.to_api_repr())
    if hasattr(value, "kms_key_name"):
        return EncryptionConfiguration(kmsKeyName=value.kms_key_name)
    raise InvalidConfiguration(f"not an encryption configuration: {value!r}")


def udfs_from(value) -> Optional[List[UserDefinedFunctionResource]]:
    if value is None:
        return None
    if isinstance(value, str):
        value = [value]
    elif not isinstance(value, (list, tuple)):
        value = [value]
    resources = []
    for uri_or_code in value:
        if not isinstance(uri_or_code, str):
            raise InvalidConfiguration(f"udf must be a gs:// uri or inline code: {uri_or_code!r}")
        if uri_or_code.startswith("gs://"):
            resources.append(UserDefinedFunctionResource(resourceUri=uri_or_code))
        else:
            resources.append(UserDefinedFunctionResource(inlineCode=uri_or_code))
    return resources


def _scalar_type(value) -> str:
    if isinstance(value, bool):
        return "BOOL"
    if isinstance(value, int):
        return "INT64"
    if isinstance(value, float):
        return "FLOAT64"
    if isinstance(value, decimal.Decimal):
        return "NUMERIC"
    if isinstance(value, str):
        return "STRING"
    if isinstance(value, bytes):
        return "BYTES"
    # datetimeはdateのサブクラスなので先に判定
    if isinstance(value, datetime.datetime):
        return "TIMESTAMP" if value.tzinfo is not None else "DATETIME"
    if isinstance(value, datetime.date):
        return "DATE"
    if isinstance(value, datetime.time):
        return "TIME"
    raise InvalidConfiguration(f"cannot infer query parameter type of {value!r}")


def _python_to_param(value, name: Optional[str] = None):
    if isinstance(value, Mapping):
        sub_params = [_python_to_param(v, str(k)) for k, v in value.items()]
        return bigquery.StructQueryParameter(name, *sub_params)
    if isinstance(value, (list, tuple)):
        if len(value) == 0:
            raise InvalidConfiguration(
                "cannot infer the type of an empty array, use bigquery.ArrayQueryParameter"
            )
        if isinstance(value[0], Mapping):
            structs = [_python_to_param(v) for v in value]
            return bigquery.ArrayQueryParameter(name, "STRUCT", structs)
        return bigquery.ArrayQueryParameter(name, _scalar_type(value[0]), list(value))
    return bigquery.ScalarQueryParameter(name, _scalar_type(value), value)


def to_query_param(value, name: Optional[str] = None) -> Dict[str, Any]:
    if hasattr(value, "to_api_repr"):
        resource = dict(value.to_api_repr())
    else:
        resource = _python_to_param(value).to_api_repr()
    if name is not None:
        resource["name"] = name
    return resource


class QueryJobUpdater:
    """投入前のクエリジョブ設定を組み立てる.

    setterごとに値を正規化し, 不正な値はその場でInvalidConfigurationを投げる.
    build()で相互制約を検証し, 変更不可のQueryJobConfigを返す.
    """

    def __init__(self, job: Job, project: Optional[str] = None):
        self._job = job
        self._project = project

    @classmethod
    def from_options(
        cls,
        query: str,
        options: Union[QueryJobOptions, Dict[str, Any], None] = None,
        project: Optional[str] = None,
        job_id: Optional[str] = None,
        prefix: Optional[str] = None,
    ) -> "QueryJobUpdater":
        if options is None:
            options = QueryJobOptions()
        elif not isinstance(options, QueryJobOptions):
            try:
                options = QueryJobOptions.model_validate(options)
            except ValidationError as e:
                raise InvalidConfiguration(str(e)) from e

        project = options.project or project
        req = Job(
            jobReference=job_ref_from(project, job_id, prefix),
            configuration=Configuration(
                query=Query(
                    query=query,
                    defaultDataset=dataset_ref_from(options.dataset, options.project, project),
                    maximumBillingTier=options.maximum_billing_tier,
                )
            ),
        )
        updater = cls(req, project=project)
        updater.create = options.create
        updater.write = options.write
        updater.table = options.table
        updater.maximum_bytes_billed = options.maximum_bytes_billed
        if options.labels is not None:
            updater.labels = options.labels
        updater.legacy_sql = resolve_legacy_sql(options.standard_sql, options.legacy_sql)
        if options.params is not None:
            if updater.legacy_sql:
                logger.warning("query parameters require standard SQL, legacy_sql is ignored")
            updater.params = options.params
        if options.external is not None:
            updater.external = options.external
        updater.priority = options.priority
        updater.cache = options.cache
        updater.large_results = options.large_results
        updater.flatten = options.flatten
        updater.udfs = options.udfs
        updater.encryption = options.encryption
        return updater

    @property
    def _query(self) -> Query:
        return self._job.configuration.query

    @property
    def job_id(self) -> Optional[str]:
        return self._job.jobReference.jobId if self._job.jobReference else None

    @property
    def priority(self) -> Optional[str]:
        return self._query.priority

    @priority.setter
    def priority(self, value):
        self._query.priority = self._priority_value(value)

    @property
    def cache(self) -> Optional[bool]:
        return self._query.useQueryCache

    @cache.setter
    def cache(self, value: Optional[bool]):
        self._query.useQueryCache = value

    @property
    def large_results(self) -> Optional[bool]:
        return self._query.allowLargeResults

    @large_results.setter
    def large_results(self, value: Optional[bool]):
        self._query.allowLargeResults = value

    @property
    def flatten(self) -> Optional[bool]:
        return self._query.flattenResults

    @flatten.setter
    def flatten(self, value: Optional[bool]):
        self._query.flattenResults = value

    @property
    def dataset(self) -> Optional[DatasetReference]:
        return self._query.defaultDataset

    @dataset.setter
    def dataset(self, value):
        self._query.defaultDataset = dataset_ref_from(value, project=self._project)

    @property
    def params(self) -> Optional[List[Dict[str, Any]]]:
        return self._query.queryParameters

    @params.setter
    def params(self, params):
        if isinstance(params, Mapping):
            self._query.useLegacySql = False
            self._query.parameterMode = ParameterMode.NAMED.value
            self._query.queryParameters = [
                to_query_param(param, name=str(name)) for name, param in params.items()
            ]
        elif isinstance(params, (list, tuple)):
            self._query.useLegacySql = False
            self._query.parameterMode = ParameterMode.POSITIONAL.value
            self._query.queryParameters = [to_query_param(param) for param in params]
        else:
            raise InvalidConfiguration(
                "Query parameters must be ordered sequence or mapping."
            )

    @property
    def parameter_mode(self) -> ParameterMode:
        if self._query.parameterMode is None:
            return ParameterMode.NONE
        return ParameterMode(self._query.parameterMode)

    @property
    def create(self) -> Optional[str]:
        return self._query.createDisposition

    @create.setter
    def create(self, value):
        self._query.createDisposition = self._disposition_value(
            value, _CREATE_DISPOSITIONS, "create"
        )

    @property
    def write(self) -> Optional[str]:
        return self._query.writeDisposition

    @write.setter
    def write(self, value):
        self._query.writeDisposition = self._disposition_value(
            value, _WRITE_DISPOSITIONS, "write"
        )

    @property
    def table(self) -> Optional[TableReference]:
        return self._query.destinationTable

    @table.setter
    def table(self, value):
        self._query.destinationTable = table_ref_from(value, self._project)

    @property
    def maximum_bytes_billed(self) -> Optional[int]:
        if self._query.maximumBytesBilled is None:
            return None
        return int(self._query.maximumBytesBilled)

    @maximum_bytes_billed.setter
    def maximum_bytes_billed(self, value: Optional[int]):
        self._query.maximumBytesBilled = None if value is None else str(value)

    @property
    def maximum_billing_tier(self) -> Optional[int]:
        return self._query.maximumBillingTier

    @maximum_billing_tier.setter
    def maximum_billing_tier(self, value: Optional[int]):
        self._query.maximumBillingTier = value

    @property
    def labels(self) -> Optional[Dict[str, str]]:
        return self._job.configuration.labels

    @labels.setter
    def labels(self, value: Optional[Dict[str, str]]):
        # マージはせず丸ごと置き換える. キーの検証はBigQuery側に任せる
        self._job.configuration.labels = None if value is None else dict(value)

    @property
    def legacy_sql(self) -> bool:
        val = self._query.useLegacySql
        return True if val is None else val

    @legacy_sql.setter
    def legacy_sql(self, value: Optional[bool]):
        self._query.useLegacySql = value

    @property
    def standard_sql(self) -> bool:
        return not self.legacy_sql

    @standard_sql.setter
    def standard_sql(self, value: Optional[bool]):
        self._query.useLegacySql = None if value is None else not value

    @property
    def external(self) -> Optional[Dict[str, Dict[str, Any]]]:
        return self._query.tableDefinitions

    @external.setter
    def external(self, value: Mapping):
        definitions = {}
        for name, obj in value.items():
            if isinstance(obj, Mapping):
                definitions[str(name)] = dict(obj)
            elif hasattr(obj, "to_api_repr"):
                definitions[str(name)] = obj.to_api_repr()
            else:
                raise InvalidConfiguration(f"not an external data source: {obj!r}")
        self._query.tableDefinitions = definitions

    @property
    def udfs(self) -> Optional[List[UserDefinedFunctionResource]]:
        return self._query.userDefinedFunctionResources

    @udfs.setter
    def udfs(self, value):
        self._query.userDefinedFunctionResources = udfs_from(value)

    @property
    def encryption(self) -> Optional[EncryptionConfiguration]:
        return self._query.destinationEncryptionConfiguration

    @encryption.setter
    def encryption(self, value):
        self._query.destinationEncryptionConfiguration = encryption_from(value)

    def build(self) -> QueryJobConfig:
        query = self._query
        if not query.query:
            raise InvalidConfiguration("query is required")
        if query.queryParameters is not None and self.legacy_sql:
            raise InvalidConfiguration("query parameters are not supported in legacy SQL")
        if query.flattenResults is False and not query.allowLargeResults:
            raise InvalidConfiguration("flatten=False requires large_results=True")
        if self.legacy_sql and query.allowLargeResults and query.destinationTable is None:
            raise InvalidConfiguration("large_results=True requires a destination table")
        return QueryJobConfig(
            job_reference=self._job.jobReference, configuration=self._job.configuration
        )

    def to_api_repr(self) -> Dict[str, Any]:
        return self.build().to_api_repr()

    @staticmethod
    def _priority_value(value) -> Optional[str]:
        if value is None:
            return None
        token = value.value if isinstance(value, Enum) else str(value)
        try:
            return _PRIORITIES[token.lower()].value
        except KeyError:
            raise InvalidConfiguration(f"unknown priority: {value!r}") from None

    @staticmethod
    def _disposition_value(value, table: Dict[str, Enum], kind: str) -> Optional[str]:
        if value is None:
            return None
        token = value.value if isinstance(value, Enum) else str(value)
        try:
            return table[token.lower()].value
        except KeyError:
            raise InvalidConfiguration(f"unknown {kind} disposition: {value!r}") from None
