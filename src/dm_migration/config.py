"""
DM → MySQL 마이그레이션 설정 모듈
환경변수(.env)에서 소스 DM / 타겟 MySQL 연결 설정과 실행 파라미터를 로드
JSON/YAML 파일에서 마이그레이션 대상 테이블 목록을 로드
"""

import json
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _find_project_root() -> Path:
    """프로젝트 루트 경로 탐색 (pyproject.toml 기준)"""
    current = Path(__file__).parent
    for _ in range(5):
        if (current / "pyproject.toml").exists():
            return current
        current = current.parent
    return Path(__file__).parent.parent.parent


PROJECT_ROOT = _find_project_root()


def parse_extra_params(extra: str | None) -> dict[str, Any]:
    """자유 형식 추가 파라미터 파싱 ("a=1&b=x" → {"a": 1, "b": "x"})

    Examples:
        >>> parse_extra_params("login_timeout=10&local_code=1")
        {'login_timeout': 10, 'local_code': 1}
        >>> parse_extra_params("")
        {}
    """
    params: dict[str, Any] = {}
    if not extra:
        return params
    for part in extra.split("&"):
        part = part.strip()
        if not part or "=" not in part:
            continue
        key, value = part.split("=", 1)
        value = value.strip()
        params[key.strip()] = int(value) if value.lstrip("-").isdigit() else value
    return params


# ============================================================
# 환경변수 기반 설정
# ============================================================

class DMSettings(BaseSettings):
    """소스 DM(Dameng) DB 연결 설정"""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_prefix="DM_",
        extra="ignore",
        frozen=True,
    )

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=5236)
    user: str = Field(default="")
    password: str = Field(default="")
    schema_name: str = Field(default="")
    extra: str = Field(default="")

    def to_connect_kwargs(self) -> dict[str, Any]:
        """dmPython.connect 키워드 인자 생성"""
        kwargs: dict[str, Any] = {
            "user": self.user,
            "password": self.password,
            "server": self.host,
            "port": self.port,
        }
        if self.schema_name:
            kwargs["schema"] = self.schema_name
        kwargs.update(parse_extra_params(self.extra))
        return kwargs


class MySQLSettings(BaseSettings):
    """타겟 MySQL 연결 설정"""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_prefix="MYSQL_",
        extra="ignore",
        frozen=True,
    )

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=3306)
    user: str = Field(default="root")
    password: str = Field(default="")
    database: str = Field(default="")
    version: int = Field(default=5)  # 5: MySQL 5.0-5.7, 8: MySQL 8.0+
    extra: str = Field(default="")
    # 커넥션 풀
    max_open_conns: int = Field(default=20)
    max_idle_conns: int = Field(default=10)
    conn_max_lifetime: int = Field(default=600)  # 초
    statement_timeout: float = Field(default=30.0)  # 초

    @property
    def charset(self) -> str:
        # 5.x 의 utf8 은 3바이트
        return "utf8mb4" if self.version >= 8 else "utf8"

    def to_dict(self) -> dict[str, Any]:
        """aiomysql 연결 인자 생성"""
        params: dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "password": self.password,
            "db": self.database,
            "charset": self.charset,
            "connect_timeout": self.statement_timeout,
        }
        params.update(parse_extra_params(self.extra))
        return params


class RunSettings(BaseSettings):
    """마이그레이션 실행 파라미터"""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_prefix="MIGRATE_",
        extra="ignore",
        frozen=True,
    )

    workers: int = Field(default=4, ge=1)
    batch_size: int = Field(default=2000, ge=1)
    tables_config: str = Field(default="./config/tables.json")
    table_timeout: float = Field(default=30 * 60)  # 테이블당 제한 시간 (초)
    batch_timeout: float = Field(default=60.0)  # 배치 INSERT 제한 시간 (초)
    report_interval: float = Field(default=30.0)  # 진행 상황 출력 주기 (초)
    # MySQL 프리페어드 파라미터 한도(65535)보다 여유 있게 설정
    max_placeholders: int = Field(default=60000, ge=1)
    max_retries: int = Field(default=3, ge=1)
    retry_backoff: float = Field(default=1.0)  # 재시도 대기 단위 (초)
    fetch_size: int = Field(default=1000, ge=1)


class MigrationSettings(BaseSettings):
    """마이그레이션 전체 설정"""

    model_config = SettingsConfigDict(frozen=True)

    source: DMSettings = Field(default_factory=DMSettings)
    target: MySQLSettings = Field(default_factory=MySQLSettings)
    run: RunSettings = Field(default_factory=RunSettings)

    def missing_fields(self, include_target: bool = True) -> list[str]:
        """필수 연결 파라미터 중 비어있는 항목"""
        required = {
            "dm-user": self.source.user,
            "dm-pass": self.source.password,
            "dm-schema": self.source.schema_name,
        }
        if include_target:
            required.update({
                "mysql-user": self.target.user,
                "mysql-pass": self.target.password,
                "mysql-db": self.target.database,
            })
        return [name for name, value in required.items() if not value]

    def with_overrides(
        self,
        source: dict[str, Any] | None = None,
        target: dict[str, Any] | None = None,
        run: dict[str, Any] | None = None,
    ) -> "MigrationSettings":
        """CLI 인자로 덮어쓴 새 설정 반환 (None 값은 무시)"""

        def _clean(values: dict[str, Any] | None) -> dict[str, Any]:
            return {k: v for k, v in (values or {}).items() if v is not None}

        def _merge(section: BaseSettings, values: dict[str, Any] | None) -> BaseSettings:
            # 덮어쓴 값도 필드 제약조건으로 검증
            return type(section).model_validate({**section.model_dump(), **_clean(values)})

        return MigrationSettings(
            source=_merge(self.source, source),
            target=_merge(self.target, target),
            run=_merge(self.run, run),
        )


# ============================================================
# 테이블 목록 설정
# ============================================================

class TablesConfig(BaseModel):
    """마이그레이션 대상 테이블 목록"""
    tables: list[str] = Field(default_factory=list)


def load_tables_config(path: str | Path) -> TablesConfig:
    """테이블 목록 파일 로드 (.json / .yaml / .yml)"""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"테이블 설정 파일을 찾을 수 없습니다: {path}")

    with open(path, "r", encoding="utf-8") as f:
        if path.suffix.lower() in (".yaml", ".yml"):
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"YAML 파싱 실패: {e}") from e
        else:
            data = json.load(f)

    return TablesConfig(**(data or {}))


def get_settings() -> MigrationSettings:
    """설정 로드"""
    return MigrationSettings()
