#!/usr/bin/env python3
"""
DM → MySQL 마이그레이션 CLI
- migrate: 테이블 목록 파일 기반 마이그레이션
- list-tables: 소스 DM 테이블 목록 조회
- show-config / init: 설정 확인 및 예시 파일 생성
"""

import asyncio
import json
import sys
from functools import wraps
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from dm_migration.client import DMClient
from dm_migration.config import MigrationSettings, get_settings, load_tables_config
from dm_migration.errors import DatabaseConnectionError, MigrationError
from dm_migration.extractor import DMSchemaExtractor
from dm_migration.logger import setup_logger
from dm_migration.migrator import DMToMySQLMigrator, MigrationSummary, TableStatus
from dm_migration.writer import MySQLWriter

console = Console()


def async_command(f):
    """Click 명령어를 async로 실행하는 데코레이터"""
    @wraps(f)
    def wrapper(*args, **kwargs):
        return asyncio.run(f(*args, **kwargs))
    return wrapper


def dm_options(f):
    """소스 DM 연결 옵션"""
    options = [
        click.option("--dm-host", default=None, help="DM 호스트"),
        click.option("--dm-port", type=int, default=None, help="DM 포트"),
        click.option("--dm-user", default=None, help="DM 사용자"),
        click.option("--dm-pass", default=None, help="DM 비밀번호"),
        click.option("--dm-schema", default=None, help="DM 스키마"),
        click.option("--dm-extra", default=None, help="DM 추가 파라미터 (a=1&b=2)"),
    ]
    for option in reversed(options):
        f = option(f)
    return f


def _source_overrides(dm_host, dm_port, dm_user, dm_pass, dm_schema, dm_extra) -> dict:
    return {
        "host": dm_host,
        "port": dm_port,
        "user": dm_user,
        "password": dm_pass,
        "schema_name": dm_schema,
        "extra": dm_extra,
    }


def _exit_if_missing(settings: MigrationSettings, include_target: bool = True):
    missing = settings.missing_fields(include_target=include_target)
    if missing:
        console.print(f"[red]오류: 필수 파라미터 누락: {', '.join('--' + m for m in missing)}[/red]")
        console.print("  CLI 옵션 또는 환경변수(DM_*, MYSQL_*)로 지정하세요.")
        sys.exit(1)


async def _open_extractor(settings: MigrationSettings) -> DMSchemaExtractor:
    client = DMClient(**settings.source.to_connect_kwargs())
    extractor = DMSchemaExtractor(client, fetch_size=settings.run.fetch_size)
    try:
        await extractor.open()
    except DatabaseConnectionError:
        client.close()
        raise
    return extractor


@click.group()
def main():
    """DM → MySQL 데이터 마이그레이션 도구"""
    pass


@main.command()
def show_config():
    """현재 연결 설정 출력 (환경변수 기반)"""
    settings = get_settings()
    console.print("[bold]DM → MySQL 연결 설정[/bold]")
    console.print("\n[소스 DM]")
    console.print(f"  Host: {settings.source.host}:{settings.source.port}")
    console.print(f"  User: {settings.source.user}")
    console.print(f"  Schema: {settings.source.schema_name}")

    console.print("\n[타겟 MySQL]")
    console.print(f"  Host: {settings.target.host}:{settings.target.port}")
    console.print(f"  User: {settings.target.user}")
    console.print(f"  Database: {settings.target.database}")
    console.print(f"  Version: {settings.target.version} (charset={settings.target.charset})")

    console.print("\n[실행]")
    console.print(f"  Workers: {settings.run.workers}")
    console.print(f"  Batch: {settings.run.batch_size}")
    console.print(f"  Tables config: {settings.run.tables_config}")


@main.command("list-tables")
@dm_options
@async_command
async def list_tables(dm_host, dm_port, dm_user, dm_pass, dm_schema, dm_extra):
    """소스 DM 의 사용자 테이블 목록 출력"""
    settings = get_settings().with_overrides(
        source=_source_overrides(dm_host, dm_port, dm_user, dm_pass, dm_schema, dm_extra)
    )
    _exit_if_missing(settings, include_target=False)

    try:
        extractor = await _open_extractor(settings)
    except DatabaseConnectionError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    with extractor.client:
        tables = await extractor.list_tables()

    table = Table(title=f"테이블 목록 ({settings.source.schema_name})")
    table.add_column("#", justify="right")
    table.add_column("테이블")
    for i, name in enumerate(tables, 1):
        table.add_row(str(i), name)
    console.print(table)


def print_summary(summary: MigrationSummary):
    """마이그레이션 요약 출력"""
    console.print("\n" + "=" * 60)
    console.print("[bold]마이그레이션 요약[/bold]")
    console.print("=" * 60)

    table = Table()
    table.add_column("테이블")
    table.add_column("상태")
    table.add_column("row", justify="right")
    table.add_column("소요(초)", justify="right")
    for r in summary.results:
        if r.status == TableStatus.COMPLETED:
            status = "[green]OK[/green]"
        elif r.status == TableStatus.FAILED:
            status = "[red]NG[/red]"
        else:
            status = f"[yellow]{r.status.value}[/yellow]"
        table.add_row(r.table_name, status, f"{r.rows_inserted:,}", f"{r.duration:.1f}")
    console.print(table)

    console.print(f"총 테이블: {summary.total_tables}")
    console.print(f"성공: [green]{summary.success_count}[/green]")
    console.print(f"실패: [red]{summary.error_count}[/red]")
    console.print(f"총 row: {summary.total_rows:,}")
    console.print(f"소요 시간: {summary.duration:.1f}초")

    errors = [r for r in summary.results if r.status == TableStatus.FAILED]
    if errors:
        console.print("\n[red]실패 목록:[/red]")
        for r in errors:
            console.print(f"  - {r.table_name}: {r.error}")


@main.command()
@dm_options
@click.option("--mysql-host", default=None, help="MySQL 호스트")
@click.option("--mysql-port", type=int, default=None, help="MySQL 포트")
@click.option("--mysql-user", default=None, help="MySQL 사용자")
@click.option("--mysql-pass", default=None, help="MySQL 비밀번호")
@click.option("--mysql-db", default=None, help="MySQL 데이터베이스")
@click.option("--mysql-ver", type=click.Choice(["5", "8"]), default=None, help="MySQL 버전: 5 (5.0-5.7) 또는 8 (8.0+)")
@click.option("--mysql-extra", default=None, help="MySQL 추가 파라미터 (a=1&b=2)")
@click.option("--workers", type=click.IntRange(min=1), default=None, help="동시 처리 테이블 수 (기본: 4)")
@click.option("--batch", "batch_size", type=click.IntRange(min=1), default=None, help="배치 크기 (기본: 2000)")
@click.option("--tables-config", default=None, help="테이블 설정 파일 경로 (기본: ./config/tables.json)")
@click.option("--table-timeout", type=float, default=None, help="테이블당 제한 시간(초) (기본: 1800)")
@click.option("--dry-run", is_flag=True, help="실제 마이그레이션 없이 생성될 DDL 만 출력")
@click.option("--verbose", "-v", is_flag=True, help="DEBUG 로그 출력")
@click.option("--log-dir", default="./logs", help="로그 파일 디렉토리")
@async_command
async def migrate(
    dm_host,
    dm_port,
    dm_user,
    dm_pass,
    dm_schema,
    dm_extra,
    mysql_host,
    mysql_port,
    mysql_user,
    mysql_pass,
    mysql_db,
    mysql_ver,
    mysql_extra,
    workers,
    batch_size,
    tables_config,
    table_timeout,
    dry_run,
    verbose,
    log_dir,
):
    """테이블 목록 파일 기반 DM → MySQL 마이그레이션

    예시:
      dm-migrate migrate --dm-user SYSDBA --dm-pass *** --dm-schema APP \\
          --mysql-pass *** --mysql-db app --mysql-ver 8
      dm-migrate migrate --tables-config config/tables.yaml --workers 8 --batch 5000
      dm-migrate migrate --dry-run
    """
    settings = get_settings().with_overrides(
        source=_source_overrides(dm_host, dm_port, dm_user, dm_pass, dm_schema, dm_extra),
        target={
            "host": mysql_host,
            "port": mysql_port,
            "user": mysql_user,
            "password": mysql_pass,
            "database": mysql_db,
            "version": int(mysql_ver) if mysql_ver else None,
            "extra": mysql_extra,
        },
        run={
            "workers": workers,
            "batch_size": batch_size,
            "tables_config": tables_config,
            "table_timeout": table_timeout,
        },
    )
    _exit_if_missing(settings, include_target=not dry_run)

    logger = setup_logger(verbose=verbose, log_dir=log_dir)
    logger.info("마이그레이션 시작")

    try:
        tables = load_tables_config(settings.run.tables_config).tables
    except (OSError, ValueError) as e:
        logger.error("테이블 설정 파일 로드 실패: %s", e)
        sys.exit(1)

    logger.info("DM 연결 중 (%s:%d)", settings.source.host, settings.source.port)
    try:
        extractor = await _open_extractor(settings)
    except DatabaseConnectionError as e:
        logger.error("%s", e)
        sys.exit(1)
    logger.info("DM 연결 성공")

    writer = MySQLWriter(
        settings.target,
        max_retries=settings.run.max_retries,
        retry_backoff=settings.run.retry_backoff,
    )
    migrator = DMToMySQLMigrator(extractor, writer, settings.run)

    with extractor.client:
        try:
            if dry_run:
                console.print(f"\n[yellow][DRY-RUN] 테이블 {len(tables)}개 DDL:[/yellow]")
                for table_name in tables:
                    try:
                        ddl = await migrator.plan_table(table_name)
                    except MigrationError as e:
                        console.print(f"[red]✗ {table_name}: {e}[/red]")
                        continue
                    console.print(f"\n[cyan]{table_name}[/cyan]")
                    console.print(ddl, markup=False)
                return

            logger.info("MySQL 연결 중 (%s:%d, 버전 %d)", settings.target.host, settings.target.port, settings.target.version)
            try:
                await writer.connect()
            except DatabaseConnectionError as e:
                logger.error("%s", e)
                sys.exit(1)
            logger.info("MySQL 연결 성공")

            summary = await migrator.run(tables)
            print_summary(summary)
        finally:
            await writer.close()


@main.command()
@click.option("--output", "-o", default="config/tables.json", help="생성할 파일 경로")
def init(output):
    """예시 테이블 설정 파일 생성"""
    example = {"tables": ["ORDERS", "ORDER_ITEMS", "CUSTOMERS"]}

    output_path = Path(output)
    if output_path.exists():
        if not click.confirm(f"'{output_path}'가 이미 존재합니다. 덮어쓰시겠습니까?"):
            click.echo("취소되었습니다.")
            return

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(example, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
    console.print(f"예시 설정 파일 생성: [cyan]{output_path}[/cyan]")
    console.print("\n파일을 편집한 후 다음 명령어로 실행하세요:")
    console.print(f"  [green]dm-migrate migrate --tables-config {output_path}[/green]")


if __name__ == "__main__":
    main()
