"""
MySQL 타겟 라이터
aiomysql 커넥션 풀 관리, 제약조건 토글, 테이블 생성, 재시도 포함 쿼리 실행
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import aiomysql

from dm_migration.config import MySQLSettings
from dm_migration.errors import (
    DatabaseConnectionError,
    SchemaWriteError,
    TransientConnectionError,
    is_transient_error,
)
from dm_migration.type_mapper import TargetColumn

logger = logging.getLogger(__name__)


def quote_identifier(name: str) -> str:
    """MySQL 식별자 인용 (`name`)"""
    return "`" + name.replace("`", "``") + "`"


def table_options(version: int) -> str:
    """버전별 테이블 옵션"""
    if version >= 8:
        return "ENGINE=InnoDB DEFAULT CHARSET=utf8mb4 ROW_FORMAT=DYNAMIC"
    return "ENGINE=InnoDB DEFAULT CHARSET=utf8"


def build_column_definition(column: TargetColumn) -> str:
    """`col` TYPE NULL|NOT NULL[ AUTO_INCREMENT]"""
    null_def = "NULL" if column.nullable else "NOT NULL"
    definition = f"{quote_identifier(column.name)} {column.data_type} {null_def}"
    if column.is_auto_increment:
        definition += " AUTO_INCREMENT"
    return definition


def build_create_table_sql(table_name: str, columns: list[TargetColumn], version: int = 5) -> str:
    """CREATE TABLE 문 생성

    Examples:
        >>> cols = [TargetColumn("ID", "BIGINT", False, True, True), TargetColumn("NAME", "VARCHAR(50)", True)]
        >>> build_create_table_sql("users", cols)
        'CREATE TABLE `users` (`ID` BIGINT NOT NULL AUTO_INCREMENT, `NAME` VARCHAR(50) NULL, PRIMARY KEY (`ID`)) ENGINE=InnoDB DEFAULT CHARSET=utf8'
    """
    if not columns:
        raise SchemaWriteError(f"테이블 {table_name} 에 컬럼 정의가 없어 생성할 수 없습니다", table_name)

    definitions = [build_column_definition(col) for col in columns]
    primary_keys = [quote_identifier(col.name) for col in columns if col.is_primary_key]
    if primary_keys:
        definitions.append(f"PRIMARY KEY ({', '.join(primary_keys)})")

    return (
        f"CREATE TABLE {quote_identifier(table_name)} ({', '.join(definitions)}) "
        f"{table_options(version)}"
    )


class MySQLWriter:
    """MySQL 타겟 라이터"""

    def __init__(
        self,
        settings: MySQLSettings,
        max_retries: int = 3,
        retry_backoff: float = 1.0,
    ):
        self.settings = settings
        self.version = settings.version
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self._pool: aiomysql.Pool | None = None
        self._checks_disabled = False

    async def connect(self):
        """커넥션 풀 생성 및 연결 확인"""
        if self._pool is not None:
            return
        try:
            self._pool = await aiomysql.create_pool(
                minsize=min(self.settings.max_idle_conns, self.settings.max_open_conns),
                maxsize=self.settings.max_open_conns,
                pool_recycle=self.settings.conn_max_lifetime,
                autocommit=True,
                **self.settings.to_dict(),
            )
            async with self._pool.acquire() as conn:
                await conn.ping(reconnect=False)
        except Exception as e:
            await self.close()
            raise DatabaseConnectionError(f"MySQL 연결 실패: {e}") from e

    async def close(self):
        """커넥션 풀 정리"""
        if self._pool is not None:
            self._pool.close()
            await self._pool.wait_closed()
            self._pool = None

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[aiomysql.Connection]:
        """풀에서 커넥션 획득 (제약조건 비활성화 중이면 세션에도 적용)"""
        if self._pool is None:
            raise DatabaseConnectionError("MySQL 커넥션 풀이 초기화되지 않았습니다")
        async with self._pool.acquire() as conn:
            if self._checks_disabled:
                async with conn.cursor() as cursor:
                    await cursor.execute("SET FOREIGN_KEY_CHECKS = 0, UNIQUE_CHECKS = 0")
            yield conn

    async def _execute_raw(self, query: str, args: Any = None) -> int:
        """단일 쿼리 실행, 영향받은 row 수 반환"""
        async with self._connection() as conn:
            async with conn.cursor() as cursor:
                return await cursor.execute(query, args)

    async def execute(self, query: str, args: Any = None, timeout: float | None = None) -> int:
        """쿼리 실행 (제한 시간 적용, 일시적 연결 오류는 TransientConnectionError 로 변환)"""
        try:
            return await asyncio.wait_for(self._execute_raw(query, args), timeout)
        except TransientConnectionError:
            raise
        except Exception as e:
            if is_transient_error(e):
                raise TransientConnectionError(str(e)) from e
            raise

    async def execute_with_retry(self, query: str, args: Any = None, timeout: float | None = None) -> int:
        """재시도 포함 실행

        일시적 연결 오류만 최대 max_retries 회까지 시도하고,
        시도 사이에는 (시도 횟수 × retry_backoff) 초 대기한다.
        """
        attempt = 1
        while True:
            try:
                return await self.execute(query, args, timeout)
            except TransientConnectionError as e:
                if attempt >= self.max_retries:
                    raise
                logger.warning("연결 문제 감지, 재시도 (%d/%d): %s", attempt, self.max_retries, e)
                await asyncio.sleep(attempt * self.retry_backoff)
                attempt += 1

    async def disable_constraints(self):
        """외래키/유니크 검사 비활성화 (데이터 적재 전)"""
        self._checks_disabled = True
        await self.execute(
            "SET FOREIGN_KEY_CHECKS = 0, UNIQUE_CHECKS = 0", timeout=self.settings.statement_timeout
        )

    async def enable_constraints(self):
        """외래키/유니크 검사 복원 (데이터 적재 후)"""
        self._checks_disabled = False
        if self._pool is not None:
            # 비활성화 상태가 남은 유휴 세션 정리
            await self._pool.clear()
        await self.execute(
            "SET FOREIGN_KEY_CHECKS = 1, UNIQUE_CHECKS = 1", timeout=self.settings.statement_timeout
        )

    async def create_table(self, table_name: str, columns: list[TargetColumn]):
        """기존 테이블 삭제 후 재생성"""
        sql = build_create_table_sql(table_name, columns, self.version)
        timeout = self.settings.statement_timeout

        try:
            await self.execute(f"DROP TABLE IF EXISTS {quote_identifier(table_name)}", timeout=timeout)
        except Exception as e:
            raise SchemaWriteError(f"테이블 {table_name} 삭제 실패: {e}", table_name) from e

        try:
            await self.execute(sql, timeout=timeout)
        except Exception as e:
            raise SchemaWriteError(f"테이블 {table_name} 생성 실패: {e}", table_name, sql=sql) from e
