"""
DM 스키마 추출기
소스 DM 에서 테이블 목록, 컬럼/기본키/자동증가 컬럼 정보 조회 및 데이터 스트리밍
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator

from dm_migration.client import DMClient
from dm_migration.errors import DatabaseConnectionError, SchemaDiscoveryError

logger = logging.getLogger(__name__)

TABLES_QUERY = "SELECT TABLE_NAME FROM USER_TABLES WHERE TABLESPACE_NAME != 'SYSTEM'"

COLUMNS_QUERY = """
    SELECT
        utc.COLUMN_NAME,
        utc.DATA_TYPE,
        utc.DATA_LENGTH,
        utc.DATA_PRECISION,
        utc.DATA_SCALE,
        utc.NULLABLE,
        utc.COLUMN_ID
    FROM USER_TAB_COLUMNS utc
    WHERE utc.TABLE_NAME = ?
    ORDER BY utc.COLUMN_ID
"""

PRIMARY_KEY_QUERY = """
    SELECT ucc.COLUMN_NAME
    FROM USER_CONS_COLUMNS ucc
    JOIN USER_CONSTRAINTS uc ON ucc.CONSTRAINT_NAME = uc.CONSTRAINT_NAME
    WHERE uc.CONSTRAINT_TYPE = 'P' AND uc.TABLE_NAME = ?
"""

# 구버전 DM 에는 없는 뷰
IDENTITY_QUERY = """
    SELECT COLUMN_NAME
    FROM USER_TAB_IDENTITY_COLS
    WHERE TABLE_NAME = ?
"""


@dataclass(frozen=True)
class ColumnDefinition:
    """DM 컬럼 메타데이터"""
    name: str
    data_type: str
    data_length: int = 0
    data_precision: int = 0
    data_scale: int = 0
    nullable: bool = True
    column_id: int = 0
    is_primary_key: bool = False
    is_identity: bool = False


def quote_identifier(name: str) -> str:
    """DM 식별자 인용 ("name")"""
    return '"' + name.replace('"', '""') + '"'


def build_select_query(table_name: str, columns: list[ColumnDefinition]) -> str:
    """컬럼 순서를 고정한 SELECT 생성"""
    column_list = ", ".join(quote_identifier(col.name) for col in columns)
    return f"SELECT {column_list} FROM {quote_identifier(table_name)}"


def _to_int(value: Any) -> int:
    return int(value) if value is not None else 0


class DMSchemaExtractor:
    """DM 스키마 추출기

    open() 시점에 소문자 테이블명 → 실제 테이블명 매핑을 한 번 만들고,
    이후 모든 테이블명 조회는 이 매핑을 거친다.
    """

    def __init__(self, client: DMClient, fetch_size: int = 1000):
        self.client = client
        self.fetch_size = fetch_size
        self._table_name_map: dict[str, str] = {}

    async def _query(self, query: str, params: tuple | None = None) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self.client.execute, query, params)

    async def open(self):
        """연결 확인 및 테이블명 매핑 로드"""
        try:
            rows = await self._query(TABLES_QUERY)
        except Exception as e:
            raise DatabaseConnectionError(f"DM 연결 실패: {e}") from e
        self._table_name_map = {row["TABLE_NAME"].lower(): row["TABLE_NAME"] for row in rows}
        logger.debug("테이블명 매핑 로드: %d개", len(self._table_name_map))

    def resolve_table_name(self, table_name: str) -> str:
        """대소문자 구분 없이 실제 테이블명 조회 (없으면 입력값 그대로)"""
        real_name = self._table_name_map.get(table_name.lower(), table_name)
        if real_name != table_name:
            logger.info("테이블명 대소문자 매칭: '%s' -> '%s'", table_name, real_name)
        return real_name

    async def list_tables(self) -> list[str]:
        """모든 사용자 테이블 조회 (SYSTEM 테이블스페이스 제외)"""
        rows = await self._query(f"{TABLES_QUERY} ORDER BY TABLE_NAME")
        return [row["TABLE_NAME"] for row in rows]

    async def get_columns(self, table_name: str) -> list[ColumnDefinition]:
        """테이블 컬럼 정의 조회 (COLUMN_ID 순서)"""
        real_name = self.resolve_table_name(table_name)

        try:
            rows = await self._query(COLUMNS_QUERY, (real_name,))
            primary_keys = {
                row["COLUMN_NAME"] for row in await self._query(PRIMARY_KEY_QUERY, (real_name,))
            }
        except Exception as e:
            raise SchemaDiscoveryError(f"테이블 {table_name} 스키마 조회 실패: {e}", table_name) from e

        identities = await self._get_identity_columns(real_name)

        columns = [
            ColumnDefinition(
                name=row["COLUMN_NAME"],
                data_type=row["DATA_TYPE"],
                data_length=_to_int(row["DATA_LENGTH"]),
                data_precision=_to_int(row["DATA_PRECISION"]),
                data_scale=_to_int(row["DATA_SCALE"]),
                nullable=row["NULLABLE"] == "Y",
                column_id=_to_int(row["COLUMN_ID"]),
                is_primary_key=row["COLUMN_NAME"] in primary_keys,
                is_identity=row["COLUMN_NAME"] in identities,
            )
            for row in rows
        ]

        if not columns:
            raise SchemaDiscoveryError(f"테이블 {table_name} 에서 컬럼 정의를 찾을 수 없습니다", table_name)

        logger.info("테이블 %s 구조 조회: 컬럼 %d개", table_name, len(columns))
        return columns

    async def _get_identity_columns(self, real_name: str) -> set[str]:
        """자동증가(IDENTITY) 컬럼 조회, 뷰가 없는 구버전이면 빈 집합"""
        try:
            rows = await self._query(IDENTITY_QUERY, (real_name,))
        except Exception as e:
            logger.warning(
                "자동증가 컬럼 조회 실패, USER_TAB_IDENTITY_COLS 미지원 버전일 수 있음: %s. "
                "자동증가 컬럼은 수동으로 처리하세요",
                e,
            )
            return set()
        return {row["COLUMN_NAME"] for row in rows}

    async def stream_rows(
        self,
        table_name: str,
        columns: list[ColumnDefinition],
    ) -> AsyncIterator[tuple]:
        """테이블 데이터 스트리밍 (fetch_size 단위로 읽고 한 row 씩 반환)"""
        real_name = self.resolve_table_name(table_name)
        query = build_select_query(real_name, columns)
        logger.info("테이블 %s 데이터 읽기 시작", table_name)

        stream = await asyncio.to_thread(self.client.open_stream, query)
        fetch: asyncio.Task | None = None
        try:
            while True:
                fetch = asyncio.ensure_future(asyncio.to_thread(stream.fetch, self.fetch_size))
                # 취소되어도 스레드의 fetch 는 끝까지 진행됨
                chunk = await asyncio.shield(fetch)
                if not chunk:
                    break
                for row in chunk:
                    yield row
        finally:
            if fetch is not None and not fetch.done():
                # 같은 커서를 쓰는 fetch 가 끝난 뒤에 닫음
                await asyncio.gather(fetch, return_exceptions=True)
            await asyncio.to_thread(stream.close)
