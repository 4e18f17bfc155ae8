from .storage import (
    BigQueryKey,
    BigQueryOptions,
    BigQueryTable,
    CloudStorageOptions,
    CustomInfoType,
    DatastoreKey,
    DatastoreOptions,
    DetectionRule,
    Dictionary,
    FieldId,
    FileSet,
    HotwordRule,
    InfoType,
    Key,
    KindExpression,
    Likelihood,
    LikelihoodAdjustment,
    PartitionId,
    PathElement,
    Proximity,
    RecordKey,
    Regex,
    StorageConfig,
    SurrogateType,
    TimespanConfig,
    WordList,
)

__all__ = [
    "BigQueryKey",
    "BigQueryOptions",
    "BigQueryTable",
    "CloudStorageOptions",
    "CustomInfoType",
    "DatastoreKey",
    "DatastoreOptions",
    "DetectionRule",
    "Dictionary",
    "FieldId",
    "FileSet",
    "HotwordRule",
    "InfoType",
    "Key",
    "KindExpression",
    "Likelihood",
    "LikelihoodAdjustment",
    "PartitionId",
    "PathElement",
    "Proximity",
    "RecordKey",
    "Regex",
    "StorageConfig",
    "SurrogateType",
    "TimespanConfig",
    "WordList",
]
