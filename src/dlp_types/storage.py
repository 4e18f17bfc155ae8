"""DLP v2のストレージ/InfoType関連の型.

``google.privacy.dlp.v2`` のメッセージを変更不可のモデルとして写したもの.
``to_api_repr()`` は生成済みクライアントにそのまま渡せる辞書を返す.
"""
import datetime
import re
from enum import IntEnum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, model_validator


class Likelihood(IntEnum):
    """確度の低い順に並ぶ"""

    LIKELIHOOD_UNSPECIFIED = 0
    VERY_UNLIKELY = 1
    UNLIKELY = 2
    POSSIBLE = 3
    LIKELY = 4
    VERY_LIKELY = 5

    @classmethod
    def parse(cls, value: Union["Likelihood", int, str]) -> "Likelihood":
        if isinstance(value, str):
            return cls[value.upper()]
        return cls(value)

    def adjust(self, levels: int) -> "Likelihood":
        # VERY_UNLIKELY未満/VERY_LIKELY超にはならない
        value = max(Likelihood.VERY_UNLIKELY, min(Likelihood.VERY_LIKELY, self + levels))
        return Likelihood(value)


class Record(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    def to_api_repr(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


def _exactly_one(record: BaseModel, fields: List[str], required: bool = False):
    given = [f for f in fields if getattr(record, f) is not None]
    if len(given) > 1:
        raise ValueError(f"only one of {', '.join(fields)} may be set, got {', '.join(given)}")
    if required and not given:
        raise ValueError(f"one of {', '.join(fields)} is required")


class InfoType(Record):
    name: str


class FieldId(Record):
    name: str


class WordList(Record):
    words: List[str]

    @model_validator(mode="after")
    def _check_words(self):
        if not self.words:
            raise ValueError("dictionary must contain at least one phrase")
        for word in self.words:
            if sum(c.isalnum() for c in word) < 2:
                raise ValueError(f"phrase needs at least 2 letters or digits: {word!r}")
        return self


class Dictionary(Record):
    """大文字小文字は区別せずに照合し, 英数字以外は空白として扱われる"""

    word_list: WordList


class Regex(Record):
    pattern: str

    def compile(self) -> "re.Pattern":
        return re.compile(self.pattern)


class SurrogateType(Record):
    pass


class Proximity(Record):
    window_before: int = 0
    window_after: int = 0

    @model_validator(mode="after")
    def _check_window(self):
        if self.window_before < 0 or self.window_after < 0:
            raise ValueError("proximity windows must not be negative")
        if self.window_before + self.window_after > 1000:
            raise ValueError("total proximity window cannot exceed 1000 characters")
        return self


class LikelihoodAdjustment(Record):
    fixed_likelihood: Optional[Likelihood] = None
    relative_likelihood: Optional[int] = None

    @model_validator(mode="after")
    def _check_oneof(self):
        _exactly_one(self, ["fixed_likelihood", "relative_likelihood"], required=True)
        return self

    def apply(self, likelihood: Likelihood) -> Likelihood:
        if self.fixed_likelihood is not None:
            return self.fixed_likelihood
        return Likelihood(likelihood).adjust(self.relative_likelihood)


class HotwordRule(Record):
    hotword_regex: Regex
    proximity: Proximity
    likelihood_adjustment: LikelihoodAdjustment


class DetectionRule(Record):
    hotword_rule: HotwordRule

    def apply(self, likelihood: Likelihood) -> Likelihood:
        return self.hotword_rule.likelihood_adjustment.apply(likelihood)


class CustomInfoType(Record):
    info_type: InfoType
    likelihood: Likelihood = Likelihood.VERY_LIKELY
    dictionary: Optional[Dictionary] = None
    regex: Optional[Regex] = None
    surrogate_type: Optional[SurrogateType] = None
    detection_rules: List[DetectionRule] = []

    @model_validator(mode="after")
    def _check_type(self):
        _exactly_one(self, ["dictionary", "regex", "surrogate_type"])
        if self.surrogate_type is not None and self.detection_rules:
            raise ValueError("detection rules are not supported for surrogate types")
        return self

    def apply_detection_rules(self, likelihood: Optional[Likelihood] = None) -> Likelihood:
        """ルールは並び順に適用する"""
        if likelihood is None:
            likelihood = self.likelihood
        for rule in self.detection_rules:
            likelihood = rule.apply(likelihood)
        return likelihood


class PartitionId(Record):
    project_id: str
    namespace_id: Optional[str] = None


class KindExpression(Record):
    name: str


class DatastoreOptions(Record):
    partition_id: Optional[PartitionId] = None
    kind: Optional[KindExpression] = None


class FileSet(Record):
    url: str

    @model_validator(mode="after")
    def _check_url(self):
        if not self.url.startswith("gs://"):
            raise ValueError(f"url must be in the format gs://<bucket>/<path>: {self.url}")
        return self


class CloudStorageOptions(Record):
    file_set: Optional[FileSet] = None
    bytes_limit_per_file: Optional[int] = None


class BigQueryTable(Record):
    project_id: Optional[str] = None
    dataset_id: str
    table_id: str

    @classmethod
    def from_string(cls, value: str) -> "BigQueryTable":
        """``<project_id>:<dataset_id>.<table_id>`` または ``<project_id>.<dataset_id>.<table_id>``"""
        parts = value.replace(":", ".", 1).split(".")
        if len(parts) == 3:
            return cls(project_id=parts[0], dataset_id=parts[1], table_id=parts[2])
        if len(parts) == 2:
            return cls(dataset_id=parts[0], table_id=parts[1])
        raise ValueError(f"not a table reference: {value}")

    def __str__(self):
        if self.project_id is None:
            return f"{self.dataset_id}.{self.table_id}"
        return f"{self.project_id}.{self.dataset_id}.{self.table_id}"


class BigQueryOptions(Record):
    table_reference: BigQueryTable
    identifying_fields: List[FieldId] = []


class TimespanConfig(Record):
    """Cloud StorageとBigQueryでのみ使える"""

    start_time: Optional[datetime.datetime] = None
    end_time: Optional[datetime.datetime] = None
    timestamp_field: Optional[FieldId] = None
    enable_auto_population_of_timespan_config: bool = False

    @model_validator(mode="after")
    def _check_range(self):
        if self.start_time and self.end_time and self.start_time > self.end_time:
            raise ValueError("start_time must not be after end_time")
        return self


class StorageConfig(Record):
    datastore_options: Optional[DatastoreOptions] = None
    cloud_storage_options: Optional[CloudStorageOptions] = None
    big_query_options: Optional[BigQueryOptions] = None
    timespan_config: Optional[TimespanConfig] = None

    @model_validator(mode="after")
    def _check_oneof(self):
        _exactly_one(
            self,
            ["datastore_options", "cloud_storage_options", "big_query_options"],
            required=True,
        )
        return self


class BigQueryKey(Record):
    table_reference: BigQueryTable
    row_number: int


class PathElement(Record):
    kind: str
    id: Optional[int] = None
    name: Optional[str] = None

    @model_validator(mode="after")
    def _check_element(self):
        if not self.kind:
            raise ValueError("kind cannot be empty")
        if self.id == 0:
            raise ValueError("id is never zero")
        if self.name == "":
            raise ValueError("name cannot be empty")
        _exactly_one(self, ["id", "name"])
        return self

    @property
    def complete(self) -> bool:
        return self.id is not None or self.name is not None

    @property
    def reserved(self) -> bool:
        return any(
            v is not None and re.fullmatch(r"__.*__", v) for v in (self.kind, self.name)
        )


class Key(Record):
    partition_id: Optional[PartitionId] = None
    path: List[PathElement]

    @model_validator(mode="after")
    def _check_path(self):
        if not self.path:
            raise ValueError("a key path can never be empty")
        if len(self.path) > 100:
            raise ValueError("a key path can have at most 100 elements")
        return self

    @property
    def reserved(self) -> bool:
        return any(element.reserved for element in self.path)


class DatastoreKey(Record):
    entity_key: Key


class RecordKey(Record):
    datastore_key: Optional[DatastoreKey] = None
    big_query_key: Optional[BigQueryKey] = None

    @model_validator(mode="after")
    def _check_oneof(self):
        _exactly_one(self, ["datastore_key", "big_query_key"], required=True)
        return self
