from pydantic import BaseModel, ConfigDict

from typing import Any, Dict, List, Optional, Union


class Resource(BaseModel):
    model_config = ConfigDict(extra="allow")

    def to_api_repr(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class DatasetReference(Resource):
    projectId: Optional[str] = None
    datasetId: Optional[str] = None


class TableReference(Resource):
    projectId: Optional[str] = None
    datasetId: Optional[str] = None
    tableId: Optional[str] = None


class EncryptionConfiguration(Resource):
    kmsKeyName: Optional[str] = None


class UserDefinedFunctionResource(Resource):
    resourceUri: Optional[str] = None
    inlineCode: Optional[str] = None


class Query(Resource):
    query: Optional[str] = None
    defaultDataset: Optional[DatasetReference] = None
    destinationTable: Optional[TableReference] = None
    destinationEncryptionConfiguration: Optional[EncryptionConfiguration] = None
    useLegacySql: Optional[bool] = None
    useQueryCache: Optional[bool] = None
    allowLargeResults: Optional[bool] = None
    flattenResults: Optional[bool] = None
    createDisposition: Optional[str] = None
    writeDisposition: Optional[str] = None
    priority: Optional[str] = None
    parameterMode: Optional[str] = None
    queryParameters: Optional[List[Dict[str, Any]]] = None
    # int64はAPIから文字列で返る. 変換はアクセサ側で行う
    maximumBytesBilled: Optional[Union[int, str]] = None
    maximumBillingTier: Optional[int] = None
    tableDefinitions: Optional[Dict[str, Dict[str, Any]]] = None
    userDefinedFunctionResources: Optional[List[UserDefinedFunctionResource]] = None


class Configuration(Resource):
    query: Optional[Query] = None
    jobType: Optional[str] = None
    labels: Optional[Dict[str, str]] = None
    dryRun: Optional[bool] = None


class JobReference(Resource):
    jobId: Optional[str] = None
    location: Optional[str] = None
    projectId: Optional[str] = None


class ExplainQueryStep(Resource):
    kind: Optional[str] = None
    substeps: Optional[List[str]] = None


class ExplainQueryStage(Resource):
    id: Optional[Union[int, str]] = None
    name: Optional[str] = None
    status: Optional[str] = None
    computeRatioAvg: Optional[float] = None
    computeRatioMax: Optional[float] = None
    readRatioAvg: Optional[float] = None
    readRatioMax: Optional[float] = None
    waitRatioAvg: Optional[float] = None
    waitRatioMax: Optional[float] = None
    writeRatioAvg: Optional[float] = None
    writeRatioMax: Optional[float] = None
    recordsRead: Optional[Union[int, str]] = None
    recordsWritten: Optional[Union[int, str]] = None
    steps: Optional[List[ExplainQueryStep]] = None


class StateQuery(Resource):
    cacheHit: Optional[bool] = None
    statementType: Optional[str] = None
    billingTier: Optional[int] = None
    totalBytesBilled: Optional[Union[int, str]] = None
    totalBytesProcessed: Optional[Union[int, str]] = None
    queryPlan: Optional[List[ExplainQueryStage]] = None


class Statistics(Resource):
    creationTime: Optional[Union[int, str]] = None
    startTime: Optional[Union[int, str]] = None
    endTime: Optional[Union[int, str]] = None
    totalBytesProcessed: Optional[Union[int, str]] = None
    query: Optional[StateQuery] = None


class ErrorProto(Resource):
    reason: Optional[str] = None
    location: Optional[str] = None
    debugInfo: Optional[str] = None
    message: Optional[str] = None


class Status(Resource):
    state: Optional[str] = None
    errorResult: Optional[ErrorProto] = None
    errors: Optional[List[ErrorProto]] = None


class Job(Resource):
    id: Optional[str] = None
    etag: Optional[str] = None
    selfLink: Optional[str] = None
    kind: Optional[str] = None
    user_email: Optional[str] = None
    jobReference: Optional[JobReference] = None
    configuration: Optional[Configuration] = None
    statistics: Optional[Statistics] = None
    status: Optional[Status] = None
