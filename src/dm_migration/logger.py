"""로깅 설정"""

import logging
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler


def setup_logger(verbose: bool = False, log_dir: str | None = "./logs") -> logging.Logger:
    """애플리케이션 로거 설정"""
    logger = logging.getLogger("dm_migration")
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    # 이미 핸들러가 설정되어 있으면 반환
    if logger.handlers:
        return logger

    # 콘솔 핸들러
    console_handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        log_time_format="%Y-%m-%d %H:%M:%S",
    )
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(console_handler)

    # 파일 핸들러
    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(
            log_path / f"migration_{datetime.now().strftime('%Y%m%d')}.log",
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(levelname)s - %(name)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(file_handler)

    return logger
