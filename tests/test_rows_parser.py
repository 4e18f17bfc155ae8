import datetime

from bqjob.rows_parser import RowsParser


def test_parse_nested_rows():
    schema = {
        "fields": [
            {
                "name": "arr",
                "type": "RECORD",
                "mode": "REPEATED",
                "fields": [
                    {"name": "a", "type": "INTEGER", "mode": "NULLABLE"},
                    {"name": "b", "type": "DATE", "mode": "NULLABLE"},
                ],
            },
            {
                "name": "st",
                "type": "RECORD",
                "mode": "NULLABLE",
                "fields": [
                    {
                        "name": "ss",
                        "type": "RECORD",
                        "mode": "NULLABLE",
                        "fields": [{"name": "id", "type": "INTEGER", "mode": "NULLABLE"}],
                    },
                    {"name": "names", "type": "STRING", "mode": "REPEATED"},
                ],
            },
            {"name": "boo", "type": "BOOLEAN", "mode": "NULLABLE"},
        ]
    }
    rows = [
        {
            "f": [
                {
                    "v": [
                        {"v": {"f": [{"v": "1"}, {"v": "2020-01-01"}]}},
                        {"v": {"f": [{"v": "2"}, {"v": "2020-01-02"}]}},
                    ]
                },
                {"v": {"f": [{"v": {"f": [{"v": "1"}]}}, {"v": [{"v": "s1"}, {"v": "s2"}]}]}},
                {"v": "true"},
            ]
        }
    ]
    assert RowsParser(schema).parse_rows(rows) == [
        {
            "arr": [
                {"a": 1, "b": datetime.date(2020, 1, 1)},
                {"a": 2, "b": datetime.date(2020, 1, 2)},
            ],
            "st": {"ss": {"id": 1}, "names": ["s1", "s2"]},
            "boo": True,
        }
    ]


def test_parse_null():
    schema = {"fields": [{"name": "x", "type": "INTEGER", "mode": "NULLABLE"}]}
    assert RowsParser(schema).parse_rows([{"f": [{"v": None}]}]) == [{"x": None}]


def test_parse_without_rows():
    schema = {"fields": [{"name": "x", "type": "INTEGER"}]}
    assert RowsParser(schema).parse_rows(None) == []


def test_parse_underscore_columns():
    schema = {
        "fields": [
            {"name": "_id", "type": "INTEGER"},
            {"name": "_PARTITIONTIME", "type": "DATE"},
            {
                "name": "_meta",
                "type": "RECORD",
                "fields": [{"name": "_src", "type": "STRING"}],
            },
        ]
    }
    rows = [{"f": [{"v": "1"}, {"v": "2020-01-01"}, {"v": {"f": [{"v": "web"}]}}]}]
    assert RowsParser(schema).parse_rows(rows) == [
        {"_id": 1, "_PARTITIONTIME": datetime.date(2020, 1, 1), "_meta": {"_src": "web"}}
    ]


def test_parse_bytes_are_base64_decoded():
    schema = {
        "fields": [
            {"name": "b", "type": "BYTES", "mode": "NULLABLE"},
            {"name": "bs", "type": "BYTES", "mode": "REPEATED"},
        ]
    }
    rows = [{"f": [{"v": "aGVsbG8="}, {"v": [{"v": "YQ=="}, {"v": "Yg=="}]}]}]
    assert RowsParser(schema).parse_rows(rows) == [{"b": b"hello", "bs": [b"a", b"b"]}]
    assert RowsParser(schema).parse_rows([{"f": [{"v": None}, {"v": []}]}]) == [
        {"b": None, "bs": []}
    ]
