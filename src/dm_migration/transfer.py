"""
배치 전송 엔진
소스 row 스트림을 배치 단위로 모아 MySQL 다중 row INSERT 로 적재
"""

import logging
import time
from typing import Any, AsyncIterable

from dm_migration.errors import TransferError
from dm_migration.type_mapper import TargetColumn
from dm_migration.writer import MySQLWriter, quote_identifier

logger = logging.getLogger(__name__)

PROGRESS_LOG_INTERVAL = 30.0  # 초


def safe_batch_size(requested: int, column_count: int, max_placeholders: int = 60000) -> int:
    """플레이스홀더 한도를 넘지 않는 배치 크기

    Examples:
        >>> safe_batch_size(5000, 30, 60000)
        2000
        >>> safe_batch_size(500, 30, 60000)
        500
        >>> safe_batch_size(100, 70000, 60000)
        1
    """
    if column_count <= 0:
        return max(requested, 1)
    return max(min(requested, max_placeholders // column_count), 1)


def normalize_value(value: Any) -> Any:
    """바이너리 값은 문자열로 변환 (hex 로 들어가는 것 방지, 손실 가능)"""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    return value


def build_insert_prefix(table_name: str, columns: list[TargetColumn]) -> tuple[str, str]:
    """INSERT 문 앞부분과 row 플레이스홀더 그룹 생성"""
    # pymysql 은 args 가 있으면 쿼리에 % 포맷팅을 적용
    column_list = ", ".join(quote_identifier(col.name).replace("%", "%%") for col in columns)
    table = quote_identifier(table_name).replace("%", "%%")
    row_placeholder = "(" + ", ".join(["%s"] * len(columns)) + ")"
    return f"INSERT INTO {table} ({column_list}) VALUES ", row_placeholder


class BatchBuffer:
    """배치 버퍼 (row 값 + 플레이스홀더 그룹)"""

    def __init__(self, row_placeholder: str):
        self.row_placeholder = row_placeholder
        self.values: list[Any] = []
        self.placeholders: list[str] = []

    def __len__(self) -> int:
        return len(self.placeholders)

    def append(self, row: tuple):
        self.values.extend(normalize_value(v) for v in row)
        self.placeholders.append(self.row_placeholder)

    def clear(self):
        self.values = []
        self.placeholders = []


class BatchTransfer:
    """배치 전송 엔진"""

    def __init__(
        self,
        writer: MySQLWriter,
        max_placeholders: int = 60000,
        batch_timeout: float = 60.0,
    ):
        self.writer = writer
        self.max_placeholders = max_placeholders
        self.batch_timeout = batch_timeout

    async def _flush(self, table_name: str, base_sql: str, buffer: BatchBuffer, final: bool = False):
        label = "마지막 배치" if final else "배치"
        logger.debug("테이블 %s %s 삽입 중 (%d행)", table_name, label, len(buffer))
        sql = base_sql + ", ".join(buffer.placeholders)
        await self.writer.execute_with_retry(sql, buffer.values, timeout=self.batch_timeout)

    async def transfer(
        self,
        table_name: str,
        columns: list[TargetColumn],
        rows: AsyncIterable[tuple],
        batch_size: int,
    ) -> int:
        """row 스트림을 타겟 테이블에 적재하고 삽입된 row 수 반환

        실패 시 그 시점까지 삽입된 row 수를 담은 TransferError 발생
        """
        if not columns:
            return 0

        effective = safe_batch_size(batch_size, len(columns), self.max_placeholders)
        logger.info(
            "테이블 %s 배치 크기 %d행 (컬럼 %d개)", table_name, effective, len(columns)
        )

        base_sql, row_placeholder = build_insert_prefix(table_name, columns)
        buffer = BatchBuffer(row_placeholder)
        total = 0
        last_report = time.monotonic()

        try:
            async for row in rows:
                buffer.append(row)
                if len(buffer) >= effective:
                    await self._flush(table_name, base_sql, buffer)
                    total += len(buffer)
                    buffer.clear()

                    if time.monotonic() - last_report > PROGRESS_LOG_INTERVAL:
                        logger.info("테이블 %s %d행 처리", table_name, total)
                        last_report = time.monotonic()

            if len(buffer) > 0:
                await self._flush(table_name, base_sql, buffer, final=True)
                total += len(buffer)
                buffer.clear()
        except Exception as e:
            raise TransferError(
                f"테이블 {table_name} 데이터 적재 실패: {e!r}", table_name, rows_inserted=total
            ) from e

        return total
