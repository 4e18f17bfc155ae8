import base64
import datetime
import decimal
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BeforeValidator, Field, create_model


def _b64decode(value):
    # tabledata.listはBYTESをbase64文字列で返す
    if isinstance(value, str):
        return base64.b64decode(value)
    return value


Base64Bytes = Annotated[bytes, BeforeValidator(_b64decode)]

_convert_type = dict(
    INTEGER=int,
    INT64=int,
    FLOAT=float,
    FLOAT64=float,
    NUMERIC=decimal.Decimal,
    BIGNUMERIC=decimal.Decimal,
    STRING=str,
    GEOGRAPHY=str,
    JSON=str,
    BYTES=Base64Bytes,
    TIME=datetime.time,
    DATE=datetime.date,
    DATETIME=datetime.datetime,
    TIMESTAMP=datetime.datetime,
    BOOLEAN=bool,
    BOOL=bool,
)


class RowsParser:
    def __init__(self, schema: Dict[str, Any]):
        self.schemas = _parse_schema(schema.get("fields", []))
        self.Model = _make_model(self.schemas)
        self.ListModel = create_model("_rows", rows=(List[self.Model], ...))

    def parse_rows(self, rows: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
        if not rows:
            return []
        new_rows = _rec(rows, self.schemas)
        return self.ListModel(rows=new_rows).model_dump(by_alias=True)["rows"]


def _parse_schema(fields):
    """
    以下のようなjsonを
    {'fields': [{'name': 'arr',
    'type': 'RECORD',
    'mode': 'REPEATED',
    'fields': [{'name': 'a', 'type': 'INTEGER', 'mode': 'NULLABLE'},
        {'name': 'b', 'type': 'DATE', 'mode': 'NULLABLE'}]},
    {'name': 'boo', 'type': 'BOOLEAN', 'mode': 'NULLABLE'}]}
    以下のようにする
    {'arr': [{'a': int, 'b': datetime.date}],
    'boo': bool}
    """
    fs = {}
    for field in fields:
        name = field["name"]
        mode = field.get("mode", "NULLABLE")
        type_ = field["type"]
        if type_ in ("RECORD", "STRUCT"):
            cfs = _parse_schema(field["fields"])
        else:
            cfs = _convert_type.get(type_, str)
        obj = [cfs] if mode == "REPEATED" else cfs
        fs[name] = obj
    return fs


def _rec(rows, schemas):
    """
    [{'f': [{'v': '1'}, {'v': None}]}] のような行を
    [{'a': '1', 'b': None}] にする
    """
    new_rows = []
    for row in rows:
        fs = row["f"]
        rs = {}
        for f, (name, c_schemas) in zip(fs, schemas.items()):
            v = f["v"]
            if isinstance(v, list):
                if isinstance(c_schemas[0], dict):
                    rs[name] = [_rec([_row["v"]], c_schemas[0])[0] for _row in v]
                else:
                    rs[name] = [_row["v"] for _row in v]
            elif isinstance(v, dict):
                rs[name] = _rec([v], c_schemas)[0]
            else:
                rs[name] = v
        new_rows.append(rs)
    return new_rows


def _make_model(fs, n="_"):
    """_parse_schemaで得た結果に従い, pydanticのモデルを動的に作成する

    列名は"_id"のように属性名として使えない場合があるので,
    フィールド名は連番にして列名はaliasで持つ
    """
    values = {}
    for i, (name, type_) in enumerate(fs.items()):
        if isinstance(type_, list):
            if isinstance(type_[0], dict):
                annotation, default = List[_make_model(type_[0], n + name)], []
            else:
                annotation, default = List[type_[0]], []
        elif isinstance(type_, dict):
            annotation, default = Optional[_make_model(type_, n + name)], None
        else:
            annotation, default = Optional[type_], None
        values[f"c{i}"] = (annotation, Field(default, alias=name))

    return create_model(n, **values)
