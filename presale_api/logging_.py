import logging

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """루트 로거 설정 (uvicorn 로거는 그대로 둔다)."""
    lvl = getattr(logging, str(level).upper(), logging.INFO)
    logging.basicConfig(level=lvl, format=_FORMAT)
    logging.getLogger().setLevel(lvl)
    # SQL 로그는 DEBUG 에서도 시끄러우므로 WARNING 고정
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
