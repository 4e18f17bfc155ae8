from logging import getLogger
from typing import Any, AsyncIterator, Dict, List, Optional

from .job import TableReference
from .rows_parser import RowsParser

logger = getLogger(__name__)


class Data(list):
    """tabledata.listの1ページ分の行.

    次ページは直前のページのtokenでのみ取得できる. 先頭からやり直す場合は
    QueryJob.data()をtoken無しで呼び直す.
    """

    def __init__(
        self,
        rows: List[Dict[str, Any]],
        token: Optional[str],
        total: Optional[int],
        schema: Optional[Dict[str, Any]],
        table: TableReference,
        service,
        parser: Optional[RowsParser] = None,
    ):
        super().__init__(rows)
        self.token = token
        self.total = total
        self.schema = schema
        self.table = table
        self.service = service
        self._parser = parser

    @classmethod
    def from_api_json(
        cls,
        json: Dict[str, Any],
        table: TableReference,
        schema: Optional[Dict[str, Any]],
        service,
        parser: Optional[RowsParser] = None,
    ) -> "Data":
        if parser is None:
            parser = RowsParser(schema or {"fields": []})
        rows = parser.parse_rows(json.get("rows"))
        total = json.get("totalRows")
        return cls(
            rows,
            token=json.get("pageToken"),
            total=None if total is None else int(total),
            schema=schema,
            table=table,
            service=service,
            parser=parser,
        )

    @property
    def headers(self) -> List[str]:
        if not self.schema:
            return []
        return [field["name"] for field in self.schema.get("fields", [])]

    @property
    def has_next(self) -> bool:
        return bool(self.token)

    async def next_page(self, max_results: Optional[int] = None) -> Optional["Data"]:
        if not self.has_next:
            return None
        logger.debug(f"fetch next page of {self.table.datasetId}.{self.table.tableId}")
        json = await self.service.list_tabledata(
            self.table.datasetId,
            self.table.tableId,
            token=self.token,
            max_results=max_results,
            project_id=self.table.projectId,
        )
        return Data.from_api_json(json, self.table, self.schema, self.service, self._parser)

    async def all(self, max_results: Optional[int] = None) -> AsyncIterator[Dict[str, Any]]:
        """このページ以降の行を順に返す. ページごとにリクエストする"""
        page = self
        while page is not None:
            for row in page:
                yield row
            page = await page.next_page(max_results)
