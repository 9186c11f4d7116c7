"""
DM(Oracle 계열) → MySQL 타입 매핑
I/O 없는 순수 함수만 포함
"""

from dataclasses import dataclass

from dm_migration.extractor import ColumnDefinition

INTEGER_KEYWORDS = {
    "BIGINT": "BIGINT",
    "INT": "INT",
    "INTEGER": "INT",
    "SMALLINT": "SMALLINT",
    "TINYINT": "TINYINT",
    "BYTE": "TINYINT",
    # MySQL BIT 은 다루기 불편해서 TINYINT(1) 사용
    "BIT": "TINYINT(1)",
    "BOOL": "TINYINT(1)",
    "BOOLEAN": "TINYINT(1)",
    "REAL": "DOUBLE",
    "DOUBLE": "DOUBLE",
    "DOUBLE PRECISION": "DOUBLE",
    "FLOAT": "DOUBLE",
}

NUMERIC_MARKERS = ("NUMBER", "DECIMAL", "NUMERIC", "DEC")

# MySQL DECIMAL 한도
MAX_DECIMAL_PRECISION = 65
MAX_DECIMAL_SCALE = 30

# utf8 최악의 경우 1문자 = 3바이트 기준
LONGTEXT_THRESHOLD = 21845  # 65535 / 3
TEXT_THRESHOLD = 5461  # 16383 / 3


@dataclass(frozen=True)
class TargetColumn:
    """MySQL 컬럼 정의"""
    name: str
    data_type: str
    nullable: bool
    is_primary_key: bool = False
    is_auto_increment: bool = False


def _map_numeric(precision: int, scale: int) -> str:
    """NUMBER/DECIMAL 계열 매핑"""
    if precision == 0 and scale == 0:
        # 정밀도 미지정 (NUMBER)
        return "DECIMAL(38,4)"

    if scale == 0:
        # 정수 → 범위에 맞는 가장 작은 정수형
        if precision <= 3:
            return "TINYINT"
        if precision <= 5:
            return "SMALLINT"
        if precision <= 9:
            return "INT"
        if precision <= 19:
            return "BIGINT"
        return f"DECIMAL({precision},0)"

    precision = min(precision, MAX_DECIMAL_PRECISION)
    scale = min(scale, MAX_DECIMAL_SCALE)
    if precision < scale:
        precision = scale
    return f"DECIMAL({precision},{scale})"


def map_type(
    source_type: str,
    length: int = 0,
    precision: int = 0,
    scale: int = 0,
    version: int = 5,
) -> str:
    """DM 컬럼 타입을 MySQL 타입 문자열로 변환

    Args:
        source_type: DM 원본 타입 (예: "NUMBER", "VARCHAR2")
        length: 바이트 길이
        precision: 전체 자릿수
        scale: 소수 자릿수
        version: 타겟 MySQL 메이저 버전 (5 또는 8)

    Examples:
        >>> map_type("NUMBER", precision=10, scale=2)
        'DECIMAL(10,2)'
        >>> map_type("VARCHAR2", length=100)
        'VARCHAR(100)'
        >>> map_type("TIMESTAMP", version=8)
        'DATETIME(6)'
    """
    origin = (source_type or "").strip().upper()

    # 1. 표준 정수/실수 키워드
    if origin in INTEGER_KEYWORDS:
        return INTEGER_KEYWORDS[origin]

    # 2. NUMBER / DECIMAL
    if any(marker in origin for marker in NUMERIC_MARKERS):
        return _map_numeric(precision, scale)

    # 3. 문자열
    if "CHAR" in origin or "STR" in origin:
        if length > LONGTEXT_THRESHOLD:
            return "LONGTEXT"
        if length > TEXT_THRESHOLD:
            return "TEXT"
        return f"VARCHAR({length})"

    # 4. 날짜/시간 (DM 의 DATE 는 시간 포함)
    if origin == "DATE":
        return "DATETIME"
    if "TIME" in origin:
        if "TIMESTAMP" in origin:
            # 5.x 는 소수초 정밀도 미지원
            return "DATETIME(6)" if version >= 8 else "DATETIME"
        return "DATETIME"

    # 5. LOB
    if "CLOB" in origin or "TEXT" in origin or "LONGVARCHAR" in origin:
        return "LONGTEXT"
    if "BLOB" in origin or "IMAGE" in origin or "BINARY" in origin:
        return "LONGBLOB"

    return "LONGTEXT"


def map_column(column: ColumnDefinition, version: int = 5) -> TargetColumn:
    """소스 컬럼 정의 → MySQL 컬럼 정의"""
    return TargetColumn(
        name=column.name,
        data_type=map_type(
            column.data_type,
            column.data_length,
            column.data_precision,
            column.data_scale,
            version,
        ),
        nullable=column.nullable,
        is_primary_key=column.is_primary_key,
        is_auto_increment=column.is_identity,
    )


def map_columns(columns: list[ColumnDefinition], version: int = 5) -> list[TargetColumn]:
    """컬럼 목록 일괄 변환 (순서 유지)"""
    return [map_column(col, version) for col in columns]
